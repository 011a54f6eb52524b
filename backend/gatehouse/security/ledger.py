"""
Expiring failure counters and lockout windows, keyed by submitted username.

Two independent records live here per username:

* the failure counter, which expires ``failure_ttl_seconds`` after the most
  recent failure, and
* the lockout window, which expires ``lockout_seconds`` after it was started.

Their TTLs are never shared. Backends fail open: if the store cannot be
reached, counts read as zero and no lockout is reported. That trade-off is
deliberate (a storage outage must not look like a lockout to a legitimate user
and must not break login), and every occurrence is logged as a warning so an
outage is visible to operators.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis

from gatehouse.core.settings import LockoutPolicy, Settings
from gatehouse.security.logger import auth_logger as logger

Clock = Callable[[], float]


class StorageUnavailable(Exception):
    """The backing expiring-key store could not be reached."""


class AttemptLedger(ABC):
    def __init__(self, policy: LockoutPolicy) -> None:
        self.policy = policy

    @abstractmethod
    def get_failure_count(self, username: str) -> int:
        ...

    @abstractmethod
    def record_failure(self, username: str) -> int:
        """Atomically increment the failure count and refresh its TTL."""

    @abstractmethod
    def clear_failures(self, username: str) -> None:
        ...

    @abstractmethod
    def get_lockout_expiry(self, username: str) -> Optional[float]:
        """Return the active lockout's expiry timestamp, or ``None``."""

    @abstractmethod
    def start_lockout(self, username: str, duration: int) -> Optional[float]:
        """
        Open a lockout window ending ``duration`` seconds from now.

        If a window is already active it is left untouched and its expiry is
        returned, so racing callers agree on one window. Returns ``None`` only
        when the store could not be written.
        """


@dataclass
class _Expiring:
    value: float
    expires_at: float


class InMemoryLedger(AttemptLedger):
    """Process-local ledger; a single lock serializes every mutation."""

    # Writes sweep every expired record at most this often.
    sweep_interval = 60.0

    def __init__(self, policy: Optional[LockoutPolicy] = None, clock: Clock = time.time) -> None:
        super().__init__(policy or LockoutPolicy())
        self._clock = clock
        self._lock = threading.Lock()
        self._failures: Dict[str, _Expiring] = {}
        self._lockouts: Dict[str, _Expiring] = {}
        self._next_sweep = 0.0

    def _now(self) -> float:
        return self._clock()

    def _live(self, table: Dict[str, _Expiring], key: str, now: float) -> Optional[_Expiring]:
        record = table.get(key)
        if record is None:
            return None
        if record.expires_at <= now:
            # Expired; drop it lazily.
            del table[key]
            return None
        return record

    def _sweep(self, now: float) -> None:
        # Caller holds self._lock.
        if now < self._next_sweep:
            return
        for table in (self._failures, self._lockouts):
            for key in [k for k, record in table.items() if record.expires_at <= now]:
                del table[key]
        self._next_sweep = now + self.sweep_interval

    def get_failure_count(self, username: str) -> int:
        with self._lock:
            record = self._live(self._failures, username, self._now())
            return int(record.value) if record else 0

    def record_failure(self, username: str) -> int:
        with self._lock:
            now = self._now()
            self._sweep(now)
            record = self._live(self._failures, username, now)
            count = int(record.value) + 1 if record else 1
            self._failures[username] = _Expiring(count, now + self.policy.failure_ttl_seconds)
            return count

    def clear_failures(self, username: str) -> None:
        with self._lock:
            self._failures.pop(username, None)

    def get_lockout_expiry(self, username: str) -> Optional[float]:
        with self._lock:
            record = self._live(self._lockouts, username, self._now())
            return record.value if record else None

    def start_lockout(self, username: str, duration: int) -> Optional[float]:
        with self._lock:
            now = self._now()
            self._sweep(now)
            active = self._live(self._lockouts, username, now)
            if active is not None:
                return active.value
            expires_at = now + duration
            self._lockouts[username] = _Expiring(expires_at, expires_at)
            return expires_at


# Keep an active window, otherwise overwrite it. ARGV: new expiry, now, ttl.
_REPLACE_ELAPSED_LOCKOUT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '')
if current and current > tonumber(ARGV[2]) then
    return tostring(current)
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', ARGV[3])
return ARGV[1]
"""


class RedisLedger(AttemptLedger):
    """
    Redis-backed ledger shared by every worker.

    ``INCR`` and ``EXPIRE`` run in one MULTI/EXEC pipeline, and the lockout key
    is written with ``SET NX EX`` so only the first racing failure opens the
    window. A key that outlived its stored expiry is replaced by a Lua
    compare-and-set, so that path opens a single window too. Redis expires
    both keys on its own; the stored expiry timestamp is still compared
    against the clock on read.
    """

    prefix = "gatehouse"

    def __init__(self, client: "redis.Redis", policy: Optional[LockoutPolicy] = None, clock: Clock = time.time) -> None:
        super().__init__(policy or LockoutPolicy())
        self._redis = client
        self._clock = clock
        self._replace_elapsed = client.register_script(_REPLACE_ELAPSED_LOCKOUT)

    def _attempts_key(self, username: str) -> str:
        return f"{self.prefix}:attempts:{username}"

    def _lockout_key(self, username: str) -> str:
        return f"{self.prefix}:lockout:{username}"

    def _call(self, op: str, fn: Callable):
        try:
            return fn()
        except redis.RedisError as exc:
            raise StorageUnavailable(f"{op}: {exc}") from exc

    def _fail_open(self, exc: StorageUnavailable, username: str) -> None:
        logger.warning(f"Ledger storage unavailable for {username!r}, failing open: {exc}")

    def get_failure_count(self, username: str) -> int:
        try:
            raw = self._call("get_failure_count", lambda: self._redis.get(self._attempts_key(username)))
        except StorageUnavailable as exc:
            self._fail_open(exc, username)
            return 0
        try:
            return int(raw) if raw is not None else 0
        except (TypeError, ValueError):
            return 0

    def record_failure(self, username: str) -> int:
        key = self._attempts_key(username)

        def _incr():
            pipe = self._redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, self.policy.failure_ttl_seconds)
            count, _ = pipe.execute()
            return int(count)

        try:
            return self._call("record_failure", _incr)
        except StorageUnavailable as exc:
            self._fail_open(exc, username)
            return 0

    def clear_failures(self, username: str) -> None:
        try:
            self._call("clear_failures", lambda: self._redis.delete(self._attempts_key(username)))
        except StorageUnavailable as exc:
            self._fail_open(exc, username)

    def get_lockout_expiry(self, username: str) -> Optional[float]:
        try:
            raw = self._call("get_lockout_expiry", lambda: self._redis.get(self._lockout_key(username)))
        except StorageUnavailable as exc:
            self._fail_open(exc, username)
            return None
        if raw is None:
            return None
        try:
            expires_at = float(raw)
        except (TypeError, ValueError):
            return None
        return expires_at if expires_at > self._clock() else None

    def start_lockout(self, username: str, duration: int) -> Optional[float]:
        key = self._lockout_key(username)
        now = self._clock()
        expires_at = now + duration

        def _open():
            created = self._redis.set(key, repr(expires_at), nx=True, ex=duration)
            if created:
                return expires_at
            # Key exists: keep it if still active, else swap it in one atomic step.
            result = self._replace_elapsed(keys=[key], args=[repr(expires_at), repr(now), duration])
            try:
                return float(result)
            except (TypeError, ValueError):
                return None

        try:
            result = self._call("start_lockout", _open)
        except StorageUnavailable as exc:
            self._fail_open(exc, username)
            return None
        return result


def build_ledger(settings: Settings, clock: Clock = time.time) -> AttemptLedger:
    policy = settings.lockout_policy
    if settings.redis_url:
        client = redis.Redis.from_url(settings.redis_url, socket_timeout=1.0, socket_connect_timeout=1.0)
        return RedisLedger(client, policy, clock=clock)
    return InMemoryLedger(policy, clock=clock)


__all__ = [
    "AttemptLedger",
    "InMemoryLedger",
    "RedisLedger",
    "StorageUnavailable",
    "build_ledger",
]
