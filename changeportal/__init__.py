"""Client-side synchronization core for the change and announcement portal."""

__version__ = "0.3.0"
