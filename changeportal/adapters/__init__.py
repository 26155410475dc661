"""Adapter package for external I/O implementations.

Purpose:
    Concrete implementations for domain ports: the HTTP transport, the caching
    store client, the object route adapter, and local settings storage.

Dependencies:
    Individual submodules depend on ``requests``, filesystem APIs, and domain
    protocol definitions.

Call context:
    Imported by the composition root in ``changeportal/app/main.py`` and by
    tests for transport-level behavior verification.
"""
