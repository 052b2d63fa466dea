"""Per-caller rate limiting for the public API and intake submissions"""
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 10_000


@dataclass
class WindowEntry:
    count: int
    started_at: datetime


def parse_limit(value: Optional[str], default: tuple[int, int]) -> tuple[int, int]:
    """Parse "max/window_seconds" (e.g. "120/900"); fall back on anything malformed."""
    if not value:
        return default
    try:
        max_str, window_str = value.split("/", 1)
        max_attempts, window_seconds = int(max_str), int(window_str)
    except ValueError:
        logger.warning(f"Ignoring malformed rate limit setting: {value!r}")
        return default
    if max_attempts <= 0 or window_seconds <= 0:
        return default
    return max_attempts, window_seconds


class RateLimiter:
    """Fixed-window counter keyed by caller.

    One instance per limit, built once per process and handed to the request
    handlers through app.state. Advisory only: counts are in memory and reset
    on restart. When more than `max_keys` callers are tracked, the least
    recently seen key is evicted.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        message: str = "Too many requests. Please try again later.",
        max_keys: int = DEFAULT_MAX_KEYS,
    ):
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)
        self.message = message
        self.max_keys = max_keys
        self.attempts: "OrderedDict[str, WindowEntry]" = OrderedDict()

    async def check_rate_limit(
        self,
        key: str,
        now: Optional[datetime] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Count one attempt for `key`.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        now = now or datetime.now(timezone.utc)

        entry = self.attempts.get(key)
        if entry is None or now - entry.started_at >= self.window:
            entry = WindowEntry(count=0, started_at=now)
        entry.count += 1

        self.attempts[key] = entry
        self.attempts.move_to_end(key)
        while len(self.attempts) > self.max_keys:
            self.attempts.popitem(last=False)

        if entry.count > self.max_attempts:
            return False, self.message
        return True, None

    def retry_after(self, key: str, now: Optional[datetime] = None) -> int:
        """Seconds until the caller's current window resets."""
        entry = self.attempts.get(key)
        if entry is None:
            return 0
        now = now or datetime.now(timezone.utc)
        remaining = (entry.started_at + self.window - now).total_seconds()
        return max(0, int(remaining))

    def reset(self):
        self.attempts.clear()
