"""Cool-down policy for reissuing passcodes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from otp_auth.services.passcodes import as_utc


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of a throttle check; ``retry_after`` is in seconds."""

    allowed: bool
    retry_after: float = 0.0


@dataclass(frozen=True)
class ThrottlePolicy:
    """Allows at most one issuance per ``cooldown`` window."""

    cooldown: timedelta = timedelta(seconds=60)

    def check(self, last_sent_at: datetime | None, now: datetime) -> ThrottleDecision:
        if last_sent_at is None:
            return ThrottleDecision(allowed=True)

        elapsed = as_utc(now) - as_utc(last_sent_at)
        if elapsed >= self.cooldown:
            return ThrottleDecision(allowed=True)

        # A last_sent_at in the future (clock skew) still waits one full window.
        remaining = min(self.cooldown, self.cooldown - elapsed).total_seconds()
        return ThrottleDecision(allowed=False, retry_after=remaining)
