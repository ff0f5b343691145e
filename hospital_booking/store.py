"""
Persistence boundary for appointments.

Every method opens its own `db_session()` and hands back frozen DTOs, so
callers never hold ORM instances past the session that loaded them.
The partial unique index on (service_id, date) is what really prevents
double booking: an `IntegrityError` on flush becomes a `ConflictError`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db import db_session
from .errors import ConflictError, NotFoundError
from .logging_config import get_logger
from .models import Appointment, AppointmentStatus

logger = get_logger(__name__)

LIVE = Appointment.status != AppointmentStatus.CANCELLED


# =========================
# DTO
# =========================
@dataclass(frozen=True)
class PatientInfo:
    name: str
    phone: str
    email: str | None = None


@dataclass(frozen=True)
class AppointmentDraft:
    service_id: str
    hospital_id: str
    patient: PatientInfo
    date: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    blocked: bool = False


@dataclass(frozen=True)
class AppointmentPatch:
    date: datetime | None = None
    status: AppointmentStatus | None = None
    patient: PatientInfo | None = None


@dataclass(frozen=True)
class AppointmentView:
    id: str
    service_id: str
    hospital_id: str
    patient: PatientInfo
    date: datetime
    status: AppointmentStatus
    created_at: datetime
    blocked: bool = False

    @classmethod
    def from_row(cls, row: Appointment) -> AppointmentView:
        return cls(
            id=row.id,
            service_id=row.service_id,
            hospital_id=row.hospital_id,
            patient=PatientInfo(row.patient_name, row.patient_phone, row.patient_email),
            date=row.date,
            status=row.status,
            created_at=row.created_at,
            blocked=row.blocked,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "serviceId": self.service_id,
            "hospitalId": self.hospital_id,
            "patient": {
                "name": self.patient.name,
                "phone": self.patient.phone,
                "email": self.patient.email,
            },
            "date": self.date.isoformat(),
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "blocked": self.blocked,
        }


# =========================
# Store
# =========================
class AppointmentStore:

    def create(self, draft: AppointmentDraft) -> AppointmentView:
        try:
            with db_session() as s:
                row = Appointment(
                    service_id=draft.service_id,
                    hospital_id=draft.hospital_id,
                    patient_name=draft.patient.name,
                    patient_phone=draft.patient.phone,
                    patient_email=draft.patient.email,
                    date=draft.date,
                    status=draft.status,
                    blocked=draft.blocked,
                )
                s.add(row)
                s.flush()
                view = AppointmentView.from_row(row)
        except IntegrityError:
            logger.info("appointment_conflict", service_id=draft.service_id, date=draft.date.isoformat())
            raise ConflictError() from None
        return view

    def get(self, appointment_id: str) -> AppointmentView | None:
        with db_session() as s:
            row = s.scalars(select(Appointment).where(Appointment.id == appointment_id, LIVE)).first()
            return AppointmentView.from_row(row) if row else None

    def remove(self, appointment_id: str, owner_hospital_id: str) -> AppointmentView:
        """Soft cancel. Unknown, foreign or already cancelled ids are all NotFound."""
        with db_session() as s:
            row = self._owned(s, appointment_id, owner_hospital_id)
            row.status = AppointmentStatus.CANCELLED
            s.flush()
            return AppointmentView.from_row(row)

    def update(self, appointment_id: str, owner_hospital_id: str, patch: AppointmentPatch) -> AppointmentView:
        try:
            with db_session() as s:
                row = self._owned(s, appointment_id, owner_hospital_id)
                if patch.date is not None:
                    row.date = patch.date
                if patch.status is not None:
                    row.status = patch.status
                if patch.patient is not None:
                    row.patient_name = patch.patient.name
                    row.patient_phone = patch.patient.phone
                    row.patient_email = patch.patient.email
                s.flush()
                view = AppointmentView.from_row(row)
        except IntegrityError:
            logger.info("appointment_conflict", appointment_id=appointment_id)
            raise ConflictError() from None
        return view

    def list_by_hospital(self, hospital_id: str) -> list[AppointmentView]:
        with db_session() as s:
            q = (
                select(Appointment)
                .where(Appointment.hospital_id == hospital_id, LIVE)
                .order_by(Appointment.date.asc())
            )
            return [AppointmentView.from_row(r) for r in s.scalars(q)]

    def list_appointed_dates(self, service_id: str) -> list[datetime]:
        """Booked dates of a service, ascending. Always derived from the live rows."""
        with db_session() as s:
            q = (
                select(Appointment.date)
                .where(Appointment.service_id == service_id, LIVE)
                .order_by(Appointment.date.asc())
            )
            return list(s.scalars(q))

    @staticmethod
    def _owned(s: Session, appointment_id: str, owner_hospital_id: str) -> Appointment:
        row = s.scalars(
            select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.hospital_id == owner_hospital_id,
                LIVE,
            )
        ).first()
        if row is None:
            raise NotFoundError("Appointment not found")
        return row
