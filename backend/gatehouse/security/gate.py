"""
Username-keyed login lockout.

The per-username state is never stored; it is derived on every attempt from the
two expiring ledger records by :func:`classify`. Limiting is keyed purely by the
submitted username (no IP or session dimension), so it does not defend against
brute force spread across many usernames.
"""

from __future__ import annotations

import enum
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from gatehouse.core.settings import FeatureToggles, LockoutPolicy
from gatehouse.security.ledger import AttemptLedger, Clock
from gatehouse.security.logger import auth_logger as logger

TOO_MANY_ATTEMPTS_MESSAGE = "Too many failed login attempts. Please try again in {minutes} minutes."


class LoginState(str, enum.Enum):
    CLEAR = "clear"
    ACCUMULATING = "accumulating"
    LOCKED_OUT = "locked_out"


def classify(failure_count: int, lockout_expiry: Optional[float], now: float) -> LoginState:
    if lockout_expiry is not None and lockout_expiry > now:
        return LoginState.LOCKED_OUT
    if failure_count > 0:
        return LoginState.ACCUMULATING
    return LoginState.CLEAR


def minutes_remaining(seconds: float) -> int:
    return max(1, math.ceil(seconds / 60))


@dataclass
class LoginError:
    code: str
    message: str


@dataclass
class TooManyAttempts(LoginError):
    expires_at: float = 0.0
    retry_after: int = 0

    @property
    def minutes_remaining(self) -> int:
        return minutes_remaining(self.retry_after)

    @classmethod
    def until(cls, expires_at: float, now: float) -> "TooManyAttempts":
        retry_after = max(0, math.ceil(expires_at - now))
        return cls(
            code="too_many_attempts",
            message=TOO_MANY_ATTEMPTS_MESSAGE.format(minutes=minutes_remaining(retry_after)),
            expires_at=expires_at,
            retry_after=retry_after,
        )


@dataclass
class LoginOutcome:
    user: Any = None
    error: Optional[LoginError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None

    @property
    def locked_out(self) -> bool:
        return isinstance(self.error, TooManyAttempts)


class LockoutGate:
    def __init__(
        self,
        ledger: AttemptLedger,
        toggles: FeatureToggles,
        policy: Optional[LockoutPolicy] = None,
        clock: Clock = time.time,
    ) -> None:
        self.ledger = ledger
        self.toggles = toggles
        self.policy = policy or ledger.policy
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.toggles.get("limit_login_attempts")

    def now(self) -> float:
        return self._clock()

    def state_of(self, username: str) -> LoginState:
        return classify(
            self.ledger.get_failure_count(username),
            self.ledger.get_lockout_expiry(username),
            self.now(),
        )

    def check(self, username: Optional[str], authenticate: Callable[[], LoginOutcome]) -> LoginOutcome:
        """
        Run ``authenticate`` behind the lockout.

        A locked-out username is denied without calling ``authenticate``, even
        if the credential would have been correct. Every failure counts the
        same way whatever its cause, so unknown usernames and wrong passwords
        are indistinguishable here.
        """
        if not self.enabled or not username:
            return authenticate()

        now = self._clock()
        expiry = self.ledger.get_lockout_expiry(username)
        state = classify(self.ledger.get_failure_count(username), expiry, now)
        if state is LoginState.LOCKED_OUT:
            logger.warning(f"Rejected login for {username} during lockout")
            return LoginOutcome(error=TooManyAttempts.until(expiry, now))

        outcome = authenticate()
        if outcome.ok:
            self.ledger.clear_failures(username)
            return outcome

        count = self.ledger.record_failure(username)
        if count < self.policy.max_attempts:
            return outcome

        expires_at = self.ledger.start_lockout(username, self.policy.lockout_seconds)
        if expires_at is None:
            return outcome
        logger.warning(f"Lockout started for {username} after {count} failed attempts")
        return LoginOutcome(error=TooManyAttempts.until(expires_at, self._clock()))


__all__ = [
    "LockoutGate",
    "LoginError",
    "LoginOutcome",
    "LoginState",
    "TOO_MANY_ATTEMPTS_MESSAGE",
    "TooManyAttempts",
    "classify",
    "minutes_remaining",
]
