"""
Stateless hardening filters.

Each filter checks one feature toggle and otherwise leaves the request or
response untouched.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from fastapi import status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from starlette.requests import Request
from starlette.responses import Response

from gatehouse.core.settings import FeatureToggles
from gatehouse.security import user_from_request
from gatehouse.security.gate import LoginError, TooManyAttempts

GENERIC_LOGIN_ERROR = "Invalid login credentials. Please try again."
XMLRPC_DISABLED = "XML-RPC services are disabled on this application."
REST_LOGIN_REQUIRED = "No Cookies, no entry. Authenticate first."

VERSION_HEADERS = ("x-generator", "x-powered-by", "server")
BLOCKED_ENDPOINTS = ("/api/users", "/api/plugins")

_AUTHOR_ARCHIVE = re.compile(r"^/author/[^/]+/?$")


def _is_rest(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def generic_login_error(error: LoginError, toggles: FeatureToggles) -> LoginError:
    # The lockout message is the one failure users must still be able to read.
    if not toggles.get("custom_login_error_message") or isinstance(error, TooManyAttempts):
        return error
    return LoginError(code="invalid_credentials", message=GENERIC_LOGIN_ERROR)


def filter_endpoints(endpoints: Iterable[str], toggles: FeatureToggles) -> List[str]:
    if not toggles.get("block_specific_endpoints"):
        return list(endpoints)
    return [e for e in endpoints if e.rstrip("/") not in BLOCKED_ENDPOINTS]


def strip_version_headers(response: Response, toggles: FeatureToggles) -> Response:
    if not toggles.get("remove_version_header"):
        return response
    for header in VERSION_HEADERS:
        if header in response.headers:
            del response.headers[header]
    return response


def reject_request(request: Request, toggles: FeatureToggles) -> Optional[Response]:
    """Return a short-circuit response if any enabled filter rejects the request."""
    path = request.url.path

    if toggles.get("disable_xmlrpc") and path.rstrip("/") == "/xmlrpc":
        return PlainTextResponse(XMLRPC_DISABLED, status_code=status.HTTP_403_FORBIDDEN)

    if toggles.get("prevent_user_enum_via_query_param") and "author" in request.query_params:
        return RedirectResponse("/", status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    if toggles.get("prevent_user_enum_via_template") and _AUTHOR_ARCHIVE.match(path):
        return RedirectResponse("/", status_code=status.HTTP_301_MOVED_PERMANENTLY)

    if _is_rest(path):
        if toggles.get("boot_non_logged_users_from_rest") and user_from_request(request) is None:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "rest_not_logged_in", "detail": REST_LOGIN_REQUIRED},
            )
        if toggles.get("block_specific_endpoints") and path.rstrip("/") in BLOCKED_ENDPOINTS:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Not Found"})

    return None


__all__ = [
    "BLOCKED_ENDPOINTS",
    "GENERIC_LOGIN_ERROR",
    "REST_LOGIN_REQUIRED",
    "XMLRPC_DISABLED",
    "filter_endpoints",
    "generic_login_error",
    "reject_request",
    "strip_version_headers",
]
