from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from .auth_models import Role, User
from .auth_security import get_subject, hash_password, verify_password
from .db import db_session
from .errors import ValidationError


@dataclass(frozen=True)
class Identity:
    """The caller as seen by the booking core."""
    id: str
    email: str
    role: Role


def _identity(u: User) -> Identity:
    return Identity(u.id, u.email, u.role)


def create_user(email: str, password: str, role: Role = Role.PATIENT) -> str:
    email = email.strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required")

    with db_session() as s:
        exists = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if exists:
            raise ValidationError("Email already registered")

        u = User(email=email, password_hash=hash_password(password), role=role, is_active=True)
        s.add(u)
        s.flush()
        return u.id


def authenticate(email: str, password: str) -> Identity | None:
    email = email.strip().lower()
    with db_session() as s:
        u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return _identity(u)


def get_user_by_id(user_id: str) -> Identity | None:
    with db_session() as s:
        u = s.get(User, user_id)
        if not u or not u.is_active:
            return None
        return _identity(u)


def identity_from_token(token: str) -> Identity | None:
    # tolerate stray spaces / quotes pasted around the token
    token = token.strip().strip('"').strip("'")
    user_id = get_subject(token)
    if not user_id:
        return None
    return get_user_by_id(user_id)
