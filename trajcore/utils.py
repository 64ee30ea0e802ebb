#!/usr/bin/env python3
"""
General utilities for the trajectory pipeline.
"""
import logging
from typing import Optional, Set

_warned: Set[str] = set()


def try_float(val) -> Optional[float]:
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def warn_once(logger: logging.Logger, key: str, msg: str, *args) -> bool:
    """
    Log a warning the first time a given occurrence class is seen.

    Per-frame code paths use this so a fault that persists across frames is
    reported once instead of flooding the log. Returns True if a message was
    emitted.
    """
    if key in _warned:
        return False
    _warned.add(key)
    logger.warning(msg, *args)
    return True


def reset_warnings() -> None:
    """Forget which occurrence classes were reported (used by tests)."""
    _warned.clear()
