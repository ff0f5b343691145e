from __future__ import annotations

import traceback
from typing import Any

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import catalogue, config
from .api_appointments import router as appointments_router, ws_router
from .auth_models import Role
from .auth_security import create_access_token
from .auth_service import Identity, authenticate, create_user
from .booking import BookingService
from .db import db_session, init_db
from .dependencies import get_current_hospital_id, get_current_user
from .errors import AuthenticationError, BookingError, InternalError, ValidationError
from .logging_config import get_logger, setup_structured_logging
from .models import ErrorRecord
from .notifier import Notifier, SubscriptionRegistry
from .seed import seed_base
from .store import AppointmentStore

logger = get_logger(__name__)

app = FastAPI(title="Hospital Booking API", version="1.0.0")



# Startup / shutdown

@app.on_event("startup")
async def startup() -> None:
    setup_structured_logging(config.LOG_LEVEL)
    init_db()
    if config.SEED_ON_STARTUP:
        seed_base()

    registry = SubscriptionRegistry()
    notifier = Notifier(registry, send_timeout=config.WS_SEND_TIMEOUT)
    app.state.registry = registry
    app.state.notifier = notifier
    app.state.booking = BookingService(
        AppointmentStore(),
        notifier,
        slot_minutes=config.SLOT_MINUTES,
        max_range_days=config.AVAILABILITY_MAX_DAYS,
    )
    logger.info("app_started")


@app.on_event("shutdown")
async def shutdown() -> None:
    await app.state.registry.clear()
    logger.info("app_stopped")



# Error handling

def record_error(exc: BaseException, request: Request) -> None:
    """Persist an unexpected failure; never raises."""
    try:
        with db_session() as s:
            s.add(
                ErrorRecord(
                    message=f"{request.method} {request.url.path}: {exc!r}"[:2000],
                    detail="".join(traceback.format_exception(exc))[-8000:],
                )
            )
    except Exception:
        logger.exception("error_record_failed")


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # framework-raised errors (missing bearer token, unknown route) in the same shape
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request_rejected", path=request.url.path, errors=len(exc.errors()))
    err = ValidationError()
    return JSONResponse(status_code=err.status_code, content={"message": err.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unexpected_error", path=request.url.path, exc_info=exc)
    await run_in_threadpool(record_error, exc, request)
    err = InternalError()
    return JSONResponse(status_code=err.status_code, content={"message": err.message})



# Auth schemas

class RegisterIn(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    email: str
    role: str
    hospitalId: str | None = None



# Catalogue schemas

class HospitalRegisterIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    password_check: str = Field(..., alias="passwordCheck")
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    schedule: dict[str, Any]


class ScheduleIn(BaseModel):
    schedule: dict[str, Any]


class CategoryIn(BaseModel):
    category: str = Field(..., min_length=1)
    schedule: dict[str, Any] | None = None


class ServiceCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: str = Field(..., alias="categoryId")
    name: str = Field(..., min_length=1)
    price: int = Field(..., ge=0)



# AUTH endpoints

@app.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn) -> dict[str, Any]:
    user_id = create_user(payload.email, payload.password, Role.PATIENT)
    return {"ok": True, "user_id": user_id}


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = authenticate(form.username, form.password)
    if not u:
        raise AuthenticationError("Invalid credentials")

    token = create_access_token(subject=u.id, extra={"email": u.email, "role": u.role.value})
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Identity = Depends(get_current_user)) -> MeOut:
    hospital_id = catalogue.get_hospital_id_for_user(user.id) if user.role == Role.HOSPITAL else None
    return MeOut(id=user.id, email=user.email, role=user.role.value, hospitalId=hospital_id)



# HOSPITAL endpoints

@app.post("/api/hospitals", status_code=status.HTTP_201_CREATED)
def register_hospital(payload: HospitalRegisterIn) -> dict[str, Any]:
    if payload.password != payload.password_check:
        raise ValidationError("Passwords do not match")

    user_id, hospital_id = catalogue.register_hospital(
        payload.email, payload.password, payload.name, payload.address, payload.phone, payload.schedule
    )
    token = create_access_token(subject=user_id, extra={"email": payload.email, "role": Role.HOSPITAL.value})
    return {
        "token": token,
        "user": {"id": user_id, "email": payload.email.strip().lower(), "role": Role.HOSPITAL.value},
        "hospital": catalogue.get_hospital_flat(hospital_id),
        "message": "Registration completed",
    }


@app.get("/api/hospitals/me")
def my_hospital(hospital_id: str = Depends(get_current_hospital_id)) -> dict[str, Any]:
    return {"hospital": catalogue.get_hospital_flat(hospital_id)}


@app.put("/api/hospitals/me/schedule")
def update_schedule(payload: ScheduleIn, hospital_id: str = Depends(get_current_hospital_id)) -> dict[str, Any]:
    schedule = catalogue.set_hospital_schedule(hospital_id, payload.schedule)
    return {"message": "Schedule updated", "schedule": schedule}


@app.post("/api/hospitals/me/categories", status_code=status.HTTP_201_CREATED)
def add_category(payload: CategoryIn, hospital_id: str = Depends(get_current_hospital_id)) -> dict[str, Any]:
    category_id = catalogue.add_category_schedule(hospital_id, payload.category, payload.schedule)
    return {"message": "Category added", "categoryId": category_id}



# SERVICE endpoints

@app.post("/api/services", status_code=status.HTTP_201_CREATED)
def create_service(payload: ServiceCreateIn, hospital_id: str = Depends(get_current_hospital_id)) -> dict[str, Any]:
    service_id = catalogue.create_service(hospital_id, payload.category_id, payload.name, payload.price)
    return {"message": "Service created", "service": catalogue.get_service_flat(service_id)}


@app.get("/api/services")
def list_services(
    name: str | None = Query(None),
    min_price: int | None = Query(None, alias="minPrice"),
    max_price: int | None = Query(None, alias="maxPrice"),
    category: str | None = Query(None),
) -> dict[str, Any]:
    return {"services": catalogue.search_services(name, min_price, max_price, category)}


@app.get("/api/services/{service_id}")
def get_service(service_id: str) -> dict[str, Any]:
    return {"service": catalogue.get_service_flat(service_id)}


app.include_router(appointments_router)
app.include_router(ws_router)
