from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from gatehouse.core.settings import get_settings

ACCESS_TOKEN_EXPIRE_MINUTES = 15
ACCESS_TOKEN_TYPE = "access"


class User:
    def __init__(self, username: str):
        self.username = username


def _jwt_config() -> tuple[str, str]:
    settings = get_settings()
    secret = settings.jwt_secret or "your-secret-key"
    algorithm = settings.jwt_algorithm or "HS256"
    return secret, algorithm


def create_access_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": username, "typ": ACCESS_TOKEN_TYPE, "exp": expire, "iat": now}
    secret, algorithm = _jwt_config()
    return jwt.encode(claims, secret, algorithm=algorithm)


def _parse_token(token: str) -> Optional[str]:
    secret, algorithm = _jwt_config()
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None

    username = payload.get("sub")
    # Lockout notices are signed with the same key; never accept them here.
    if isinstance(username, str) and username and payload.get("typ") == ACCESS_TOKEN_TYPE:
        return username
    return None


def user_from_request(request: Request) -> Optional[User]:
    auth = request.headers.get("authorization", "")
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        username = _parse_token(parts[1])
        if username:
            return User(username=username)
    return None


def get_current_user(request: Request) -> User:
    user = user_from_request(request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
    return user
