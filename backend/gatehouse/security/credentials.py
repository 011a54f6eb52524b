"""Credential check wrapped by the lockout gate."""

from __future__ import annotations

import os

from sqlalchemy import select
from sqlalchemy.orm import Session

from gatehouse.db import Base, SessionLocal, engine
from gatehouse.db_models import User as DBUser
from gatehouse.security.gate import LoginError, LoginOutcome
from gatehouse.security.passwords import burn_verify, hash_password, verify_password

# ---- Demo credentials ----
DEMO_USERNAME = os.getenv("DEMO_USERNAME", "admin")
DEMO_PASSWORD = os.getenv("DEMO_PASSWORD", "secret123")

INVALID_USERNAME = LoginError("invalid_username", "No account exists for that username.")
INCORRECT_PASSWORD = LoginError("incorrect_password", "The password you entered is incorrect.")


def authenticate(db: Session, username: str, password: str) -> LoginOutcome:
    user = db.execute(select(DBUser).where(DBUser.username == username)).scalars().first()
    if user is None:
        burn_verify(password)
        return LoginOutcome(error=INVALID_USERNAME)
    if not verify_password(password, user.password_hash):
        return LoginOutcome(error=INCORRECT_PASSWORD)
    return LoginOutcome(user=user)


def create_user(db: Session, username: str, password: str) -> DBUser:
    user = DBUser(username=username, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        exists = db.execute(select(DBUser).where(DBUser.username == DEMO_USERNAME)).scalars().first()
        if exists is None:
            create_user(db, DEMO_USERNAME, DEMO_PASSWORD)
