from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, Field

FEATURE_NAMES = (
    "limit_login_attempts",
    "custom_login_error_message",
    "remove_version_header",
    "disable_xmlrpc",
    "prevent_user_enum_via_query_param",
    "prevent_user_enum_via_template",
    "boot_non_logged_users_from_rest",
    "block_specific_endpoints",
)

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


class FeatureToggles:
    """Flat feature-name -> bool mapping. Unknown names read as disabled."""

    __slots__ = ("_enabled",)

    def __init__(self, enabled: Iterable[str] = ()) -> None:
        self._enabled: FrozenSet[str] = frozenset(n.strip() for n in enabled if n and n.strip())

    def get(self, name: str) -> bool:
        return name in self._enabled

    def __repr__(self) -> str:
        return f"FeatureToggles({sorted(self._enabled)!r})"


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 3
    lockout_seconds: int = 30 * 60
    # How long a failure keeps counting toward a lockout; independent of lockout_seconds.
    failure_ttl_seconds: int = 60 * 60

    def __post_init__(self) -> None:
        for name in ("max_attempts", "lockout_seconds", "failure_ttl_seconds"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


class Settings(BaseModel):
    security_features: List[str] = Field(default_factory=lambda: list(FEATURE_NAMES))
    max_login_attempts: int = Field(default=3)
    lockout_seconds: int = Field(default=1800)
    failure_ttl_seconds: int = Field(default=3600)
    redis_url: Optional[str] = Field(default=None)
    database_url: str = Field(default="sqlite:///./gatehouse.db")
    jwt_secret: str = Field(default="your-secret-key")
    jwt_algorithm: str = Field(default="HS256")
    notice_cookie_name: str = Field(default="login_lockout")
    cookie_secure: bool = Field(default=False)
    login_rate_limit: str = Field(default="30/minute")
    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @property
    def toggles(self) -> FeatureToggles:
        return FeatureToggles(self.security_features)

    @property
    def lockout_policy(self) -> LockoutPolicy:
        return LockoutPolicy(
            max_attempts=self.max_login_attempts,
            lockout_seconds=self.lockout_seconds,
            failure_ttl_seconds=self.failure_ttl_seconds,
        )


def _split(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _load_settings() -> Settings:
    env = os.getenv
    features = env("SECURITY_FEATURES")
    security_features = list(FEATURE_NAMES) if features is None else _split(features)
    redis = env("REDIS_URL")
    if redis == "":
        redis = None
    origins = _split(env("ALLOWED_ORIGINS", "")) or list(DEFAULT_ALLOWED_ORIGINS)
    return Settings(
        security_features=security_features,
        max_login_attempts=int(env("MAX_LOGIN_ATTEMPTS", "3")),
        lockout_seconds=int(env("LOCKOUT_SECONDS", "1800")),
        failure_ttl_seconds=int(env("FAILURE_TTL_SECONDS", "3600")),
        redis_url=redis,
        database_url=env("DATABASE_URL", "sqlite:///./gatehouse.db") or "sqlite:///./gatehouse.db",
        jwt_secret=env("JWT_SECRET", "your-secret-key") or "your-secret-key",
        jwt_algorithm=env("JWT_ALGORITHM", "HS256") or "HS256",
        notice_cookie_name=env("NOTICE_COOKIE_NAME", "login_lockout") or "login_lockout",
        cookie_secure=env("COOKIE_SECURE", "0") == "1",
        login_rate_limit=env("LOGIN_RATE_LIMIT", "30/minute") or "30/minute",
        allowed_origins=origins,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "FEATURE_NAMES",
    "FeatureToggles",
    "LockoutPolicy",
    "Settings",
    "get_settings",
    "reload_settings",
]
