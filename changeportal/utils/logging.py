"""Root logger setup for the command line client.

``PORTAL_LOG_LEVEL`` (a level name or number) wins over everything else, then
a truthy ``PORTAL_DEBUG``, then the ``--verbose`` flag.
"""

from __future__ import annotations

import logging
import os

LEVEL_ENV = "PORTAL_LOG_LEVEL"
DEBUG_ENV = "PORTAL_DEBUG"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%H:%M:%S"


def _env_level() -> int | None:
    raw = os.environ.get(LEVEL_ENV, "").strip()
    if raw:
        if raw.isdigit():
            return int(raw)
        named = logging.getLevelName(raw.upper())
        if isinstance(named, int):
            return named
        logging.getLogger(__name__).warning("Ignoring unknown %s=%r", LEVEL_ENV, raw)
    if os.environ.get(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on"):
        return logging.DEBUG
    return None


def configure_root(*, verbose: bool = False, quiet_level: int = logging.WARNING) -> int:
    """Install the console handler once and set the root level.

    Returns the level in effect.
    """
    level = _env_level()
    if level is None:
        level = logging.DEBUG if verbose else quiet_level
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_FORMAT, datefmt=_DATEFMT)
    root.setLevel(level)
    return level


__all__ = ["DEBUG_ENV", "LEVEL_ENV", "configure_root"]
