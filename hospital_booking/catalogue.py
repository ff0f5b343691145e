"""
Catalogue collaborator: hospitals, categories and services.

Only what the booking core needs plus the configuration glue to fill it in.
Joins and filters run in SQL; results leave as plain dicts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select

from .auth_models import Role, User
from .auth_security import hash_password
from .db import db_session
from .errors import NotFoundError, ValidationError
from .models import Category, Hospital, HospitalCategory, Service
from .schedule import Schedule, ScheduleError, effective_schedule


@dataclass(frozen=True)
class ServiceTarget:
    """What the booking core needs to know about a service."""
    service_id: str
    hospital_id: str
    schedule: Schedule


def _parse_schedule(data: Any) -> Schedule:
    try:
        return Schedule.from_dict(data)
    except ScheduleError as e:
        raise ValidationError(str(e)) from None


# =========================
# Booking core interface
# =========================
def get_service_target(service_id: str) -> ServiceTarget:
    """
    Hospital and effective schedule for a service.
    The category schedule, when the hospital set one, replaces the hospital schedule.
    """
    with db_session() as s:
        row = s.execute(
            select(Service.id, Service.hospital_id, Hospital.schedule, HospitalCategory.schedule.label("category_schedule"))
            .join(Hospital, Hospital.id == Service.hospital_id)
            .outerjoin(
                HospitalCategory,
                (HospitalCategory.hospital_id == Service.hospital_id)
                & (HospitalCategory.category_id == Service.category_id),
            )
            .where(Service.id == service_id)
        ).first()

    if row is None:
        raise NotFoundError("Service not found")

    category_schedule = Schedule.from_dict(row.category_schedule) if row.category_schedule else None
    schedule = effective_schedule(Schedule.from_dict(row.schedule), category_schedule)
    return ServiceTarget(row.id, row.hospital_id, schedule)


def get_service_schedule(service_id: str) -> Schedule:
    return get_service_target(service_id).schedule


def get_hospital_for_service(service_id: str) -> str:
    return get_service_target(service_id).hospital_id


# =========================
# Hospitals
# =========================
def register_hospital(
    email: str, password: str, name: str, address: str, phone: str, schedule: dict[str, Any]
) -> tuple[str, str]:
    """Create the staff account and its hospital. Returns (user_id, hospital_id)."""
    email = email.strip().lower()
    if not email or not password or not name.strip() or not address.strip() or not phone.strip():
        raise ValidationError("Fill in all fields")
    parsed = _parse_schedule(schedule)

    with db_session() as s:
        if s.execute(select(User.id).where(User.email == email)).first():
            raise ValidationError("Email already registered")
        clash = s.execute(
            select(Hospital.id).where(or_(Hospital.name == name, Hospital.address == address, Hospital.phone == phone))
        ).first()
        if clash:
            raise ValidationError("A hospital with these details is already registered")

        u = User(email=email, password_hash=hash_password(password), role=Role.HOSPITAL)
        s.add(u)
        s.flush()
        h = Hospital(user_id=u.id, name=name.strip(), address=address.strip(), phone=phone.strip(), schedule=parsed.to_dict())
        s.add(h)
        s.flush()
        return u.id, h.id


def get_hospital_id_for_user(user_id: str) -> str | None:
    with db_session() as s:
        return s.scalars(select(Hospital.id).where(Hospital.user_id == user_id)).first()


def get_hospital_flat(hospital_id: str) -> dict[str, Any]:
    with db_session() as s:
        h = s.get(Hospital, hospital_id)
        if h is None:
            raise NotFoundError("Hospital not found")
        rows = s.execute(
            select(Category.id, Category.name, HospitalCategory.schedule)
            .join(HospitalCategory, HospitalCategory.category_id == Category.id)
            .where(HospitalCategory.hospital_id == hospital_id)
            .order_by(Category.name)
        ).all()
        return {
            "id": h.id,
            "name": h.name,
            "address": h.address,
            "phone": h.phone,
            "schedule": h.schedule,
            "serviceList": [
                {"categoryId": r.id, "category": r.name, "schedule": r.schedule} for r in rows
            ],
        }


def set_hospital_schedule(hospital_id: str, schedule: dict[str, Any]) -> dict[str, Any]:
    parsed = _parse_schedule(schedule)
    with db_session() as s:
        h = s.get(Hospital, hospital_id)
        if h is None:
            raise NotFoundError("Hospital not found")
        h.schedule = parsed.to_dict()
        return h.schedule


def add_category_schedule(hospital_id: str, category: str, schedule: dict[str, Any] | None) -> str:
    """
    Offer a category in a hospital, optionally with its own schedule.
    Creates the category on first use. Returns the category id.
    """
    category = category.strip()
    if not category:
        raise ValidationError("Category name is required")
    stored = _parse_schedule(schedule).to_dict() if schedule else None

    with db_session() as s:
        c = s.scalars(select(Category).where(Category.name == category)).first()
        if c is None:
            c = Category(name=category)
            s.add(c)
            s.flush()

        link = s.scalars(
            select(HospitalCategory).where(
                HospitalCategory.hospital_id == hospital_id, HospitalCategory.category_id == c.id
            )
        ).first()
        if link is None:
            s.add(HospitalCategory(hospital_id=hospital_id, category_id=c.id, schedule=stored))
        else:
            link.schedule = stored
        return c.id


# =========================
# Services
# =========================
def create_service(hospital_id: str, category_id: str, name: str, price: int) -> str:
    if not name.strip():
        raise ValidationError("Service name is required")
    if price < 0:
        raise ValidationError("Price cannot be negative")

    with db_session() as s:
        offered = s.execute(
            select(HospitalCategory.id).where(
                HospitalCategory.hospital_id == hospital_id, HospitalCategory.category_id == category_id
            )
        ).first()
        if not offered:
            raise ValidationError("Add the category to the hospital first")
        svc = Service(hospital_id=hospital_id, category_id=category_id, name=name.strip(), price=price)
        s.add(svc)
        s.flush()
        return svc.id


def get_service_flat(service_id: str) -> dict[str, Any]:
    target = get_service_target(service_id)
    with db_session() as s:
        r = s.execute(
            select(Service.id, Service.name, Service.price, Category.name.label("category"),
                   Hospital.name.label("hospital_name"), Hospital.address, Hospital.phone)
            .join(Category, Category.id == Service.category_id)
            .join(Hospital, Hospital.id == Service.hospital_id)
            .where(Service.id == service_id)
        ).one()
    return {
        "id": r.id,
        "name": r.name,
        "price": r.price,
        "category": r.category,
        "schedule": target.schedule.to_dict(),
        "hospital": {"id": target.hospital_id, "name": r.hospital_name, "address": r.address, "phone": r.phone},
    }


def search_services(
    name: str | None = None,
    min_price: int | None = None,
    max_price: int | None = None,
    category: str | None = None,
) -> list[dict[str, Any]]:
    """
    Service listing with the filters as SQL predicates:
    name is a case-insensitive substring, prices are inclusive bounds.
    """
    q = (
        select(Service.id, Service.name, Service.price, Category.name.label("category"),
               Hospital.id.label("hospital_id"), Hospital.name.label("hospital_name"),
               Hospital.address, Hospital.phone)
        .join(Category, Category.id == Service.category_id)
        .join(Hospital, Hospital.id == Service.hospital_id)
    )
    if name:
        q = q.where(func.lower(Service.name).contains(name.strip().lower(), autoescape=True))
    if min_price is not None:
        q = q.where(Service.price >= min_price)
    if max_price is not None:
        q = q.where(Service.price <= max_price)
    if category:
        q = q.where(Category.name == category)

    with db_session() as s:
        rows = s.execute(q.order_by(Service.name)).all()
        return [
            {
                "id": r.id,
                "name": r.name,
                "price": r.price,
                "category": r.category,
                "hospital": {"id": r.hospital_id, "name": r.hospital_name, "address": r.address, "phone": r.phone},
            }
            for r in rows
        ]
