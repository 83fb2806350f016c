"""Injectable "now" provider.

Advance-notice and advance-limit rules compare against the clock, so every
service entry point takes a ``clock`` callable instead of reading the system
time directly.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def fixed_clock(moment: datetime) -> Clock:
    """Return a clock frozen at ``moment`` (naive values are read as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    frozen = moment.astimezone(timezone.utc)
    return lambda: frozen
