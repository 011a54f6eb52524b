# backend/gatehouse/routers/auth.py
import threading
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from gatehouse.core.rate_limit import limiter
from gatehouse.core.settings import get_settings
from gatehouse.db import get_db
from gatehouse.models import LoginPayload, LoginResponse
from gatehouse.security import create_access_token
from gatehouse.security.credentials import authenticate
from gatehouse.security.filters import generic_login_error
from gatehouse.security.gate import LockoutGate, LoginError
from gatehouse.security.ledger import build_ledger
from gatehouse.security.logger import auth_logger as logger
from gatehouse.security.notice import clear_notice_cookie, read_notice, set_notice_cookie

router = APIRouter(prefix="/auth", tags=["auth"])

UNKNOWN_FAILURE = LoginError("invalid_credentials", "Invalid login credentials. Please try again.")


# (settings, gate); rebuilt whenever reload_settings() hands out a new Settings.
_gate_cache: dict = {}
_gate_lock = threading.Lock()


def get_gate() -> LockoutGate:
    settings = get_settings()
    with _gate_lock:
        cached = _gate_cache.get("gate")
        if cached is None or cached[0] is not settings:
            gate = LockoutGate(build_ledger(settings), settings.toggles, settings.lockout_policy)
            cached = _gate_cache["gate"] = (settings, gate)
        return cached[1]


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------- Utilities ----------------
def _client_ip(request: Request) -> str:
    client = request.client
    return client.host if client and client.host else "0.0.0.0"


@router.get("/lockout/status")
def lockout_status(
    request: Request,
    username: Optional[str] = Query(default=None),
    gate: LockoutGate = Depends(get_gate),
):
    """
    Tell the login form whether to render itself.

    Reads the lockout notice cookie left by a denied login. A notice for the
    same username that has not expired suppresses the form once; the cookie is
    deleted as it is read. Anything else renders the normal form. This never
    consults the ledger and grants nothing.
    """
    settings = get_settings()
    notice = None
    if gate.enabled:
        notice = read_notice(
            request.cookies.get(settings.notice_cookie_name),
            username,
            settings.jwt_secret,
            settings.jwt_algorithm,
            now=gate.now(),
        )
    if notice is None:
        return {"show_form": True, "message": None}

    response = JSONResponse(content={"show_form": False, "message": notice.message(gate.now())})
    clear_notice_cookie(response, settings, request)
    return response


# ---------------- Login route ----------------
@router.post("/login", response_model=LoginResponse)
@limiter.limit(_login_rate_limit)
def login(
    request: Request,
    payload: LoginPayload,
    db: Session = Depends(get_db),
    gate: LockoutGate = Depends(get_gate),
):
    settings = get_settings()
    ip = _client_ip(request)
    username = payload.username
    logger.info(f"Login attempt for {username!r} from IP {ip} Password:[REDACTED]")

    outcome = gate.check(username, lambda: authenticate(db, username, payload.password))

    if outcome.locked_out:
        error = outcome.error
        response = JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": error.code, "detail": error.message, "retry_after": error.retry_after},
            headers={"Retry-After": str(error.retry_after)},
        )
        set_notice_cookie(response, username, error.expires_at, settings, request, now=gate.now())
        return response

    if not outcome.ok:
        error = generic_login_error(outcome.error or UNKNOWN_FAILURE, gate.toggles)
        logger.warning(f"Failed login for {username!r} from IP {ip} ({outcome.error.code if outcome.error else 'unknown'})")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": error.code, "message": error.message},
        )

    logger.info(f"Successful login for {username!r} from IP {ip}")
    token = create_access_token(outcome.user.username)
    response = JSONResponse(content=LoginResponse(access_token=token).model_dump())
    clear_notice_cookie(response, settings, request)
    return response
