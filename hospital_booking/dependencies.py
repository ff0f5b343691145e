"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from . import catalogue
from .auth_models import Role
from .auth_service import Identity, identity_from_token
from .booking import BookingService
from .errors import AuthenticationError, AuthorizationError

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_user(token: str = Depends(oauth2_scheme)) -> Identity:
    user = identity_from_token(token)
    if user is None:
        raise AuthenticationError()
    return user


def get_current_hospital_id(user: Identity = Depends(get_current_user)) -> str:
    """Hospital-only routes: the caller must be hospital staff and own a hospital."""
    if user.role != Role.HOSPITAL:
        raise AuthorizationError()
    hospital_id = catalogue.get_hospital_id_for_user(user.id)
    if hospital_id is None:
        raise AuthorizationError()
    return hospital_id


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking
