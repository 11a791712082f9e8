# PATH: core/time.py
"""
Time utilities for FLASHARB.

Deadlines and freshness checks. Callers that need deterministic time
(tests, replays) inject their own clock instead of reading time.time().
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from core.constants import SWAP_DEADLINE_SECONDS

Clock = Callable[[], float]


def now_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Get current UTC datetime as ISO string."""
    return now_utc().isoformat()


def now_timestamp() -> float:
    """Get current Unix timestamp."""
    return time.time()


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def deadline_from(
    now: float,
    window_seconds: int = SWAP_DEADLINE_SECONDS,
) -> float:
    """Deadline `window_seconds` after `now`."""
    return now + window_seconds


def is_expired(deadline: float, current_time: Optional[float] = None) -> bool:
    """True once `current_time` is strictly past `deadline`."""
    current = time.time() if current_time is None else current_time
    return current > deadline


def is_fresh(
    timestamp: float,
    max_age_seconds: float = 2.0,
    current_time: Optional[float] = None,
) -> bool:
    """
    Check if a timestamp is fresh (within max_age).
    
    Args:
        timestamp: Unix timestamp to check
        max_age_seconds: Maximum allowed age
        current_time: Current time (defaults to now)
        
    Returns:
        True if timestamp is fresh
    """
    current = time.time() if current_time is None else current_time
    age = current - timestamp
    return age <= max_age_seconds
