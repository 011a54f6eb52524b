"""
Client-held lockout notice.

After the gate denies a username for lockout, the client gets a short-lived
signed cookie so the next login-form render can show the retry-after message
instead of the form. The notice is cosmetic only: the gate never reads it, and
any missing, malformed, expired or mismatched notice just means "render the
default form".
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt
from starlette.requests import Request
from starlette.responses import Response

from gatehouse.core.settings import Settings
from gatehouse.security.gate import TOO_MANY_ATTEMPTS_MESSAGE, minutes_remaining
from gatehouse.security.logger import auth_logger as logger

NOTICE_TYPE = "lockout_notice"


@dataclass(frozen=True)
class LockoutNotice:
    username: str
    expires_at: float

    def minutes_remaining(self, now: float) -> int:
        return minutes_remaining(self.expires_at - now)

    def message(self, now: float) -> str:
        return TOO_MANY_ATTEMPTS_MESSAGE.format(minutes=self.minutes_remaining(now))


def issue_notice(username: str, expires_at: float, secret: str, algorithm: str = "HS256") -> str:
    # Rounded up so the notice never lapses before the lockout window does.
    claims = {"sub": username, "exp": math.ceil(expires_at), "typ": NOTICE_TYPE}
    return jwt.encode(claims, secret, algorithm=algorithm)


def read_notice(
    token: Optional[str],
    username: Optional[str],
    secret: str,
    algorithm: str = "HS256",
    now: Optional[float] = None,
) -> Optional[LockoutNotice]:
    if not token or not username:
        return None
    try:
        # Expiry is checked below against the caller's clock.
        claims = jwt.decode(token, secret, algorithms=[algorithm], options={"verify_exp": False})
    except JWTError:
        logger.debug("Discarded malformed lockout notice")
        return None

    if claims.get("typ") != NOTICE_TYPE or claims.get("sub") != username:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    current = time.time() if now is None else now
    if exp <= current:
        return None
    return LockoutNotice(username=username, expires_at=float(exp))


def _cookie_secure(settings: Settings, request: Optional[Request]) -> bool:
    if settings.cookie_secure:
        return True
    return request is not None and request.url.scheme == "https"


def set_notice_cookie(
    response: Response,
    username: str,
    expires_at: float,
    settings: Settings,
    request: Optional[Request] = None,
    now: Optional[float] = None,
) -> None:
    current = time.time() if now is None else now
    token = issue_notice(username, expires_at, settings.jwt_secret, settings.jwt_algorithm)
    response.set_cookie(
        settings.notice_cookie_name,
        token,
        max_age=max(1, int(expires_at - current)),
        path="/",
        secure=_cookie_secure(settings, request),
        httponly=True,
        samesite="lax",
    )


def clear_notice_cookie(response: Response, settings: Settings, request: Optional[Request] = None) -> None:
    response.delete_cookie(
        settings.notice_cookie_name,
        path="/",
        secure=_cookie_secure(settings, request),
        httponly=True,
        samesite="lax",
    )


__all__ = [
    "LockoutNotice",
    "clear_notice_cookie",
    "issue_notice",
    "read_notice",
    "set_notice_cookie",
]
