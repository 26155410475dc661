"""Use-case layer for orchestrating portal workflows.

Each module coordinates domain objects and ports without performing transport
I/O directly.
"""
