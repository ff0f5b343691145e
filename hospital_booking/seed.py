from __future__ import annotations

from sqlalchemy import select

from . import catalogue
from .auth_models import User
from .db import db_session
from .models import Hospital

DEMO_EMAIL = "demo.hospital@booking.local"
DEMO_PASSWORD = "demo-password"


def seed_base() -> str:
    """
    Load a demo hospital (idempotent):
    - staff account
    - weekday 09:00-17:00, Saturday 10:00-14:00 schedule
    - two categories, one of them with its own schedule
    - a few services
    Returns the hospital id.
    """
    with db_session() as s:
        existing = s.execute(
            select(Hospital.id).join(User, User.id == Hospital.user_id).where(User.email == DEMO_EMAIL)
        ).scalar_one_or_none()
    if existing is not None:
        return existing

    _, hospital_id = catalogue.register_hospital(
        DEMO_EMAIL,
        DEMO_PASSWORD,
        "Central Hospital",
        "1 Main Street",
        "+1-555-0100",
        {"weekdays": {"start": "09:00", "end": "17:00"}, "saturday": {"start": "10:00", "end": "14:00"}},
    )

    general = catalogue.add_category_schedule(hospital_id, "General practice", None)
    radiology = catalogue.add_category_schedule(
        hospital_id, "Radiology", {"weekdays": {"start": "08:00", "end": "12:00"}}
    )

    services = [
        (general, "General consultation", 40),
        (general, "Follow-up visit", 25),
        (radiology, "X-ray", 60),
    ]
    for category_id, name, price in services:
        catalogue.create_service(hospital_id, category_id, name, price)

    return hospital_id
