from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .auth_models import new_uuid
from .db import Base


class AppointmentStatus(enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Hospital(Base):
    __tablename__ = "hospitals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    # Schedule.to_dict() form
    schedule: Mapped[dict] = mapped_column(JSON, nullable=False)

    service_list: Mapped[list["HospitalCategory"]] = relationship(
        back_populates="hospital", cascade="all, delete-orphan"
    )
    services: Mapped[list["Service"]] = relationship(back_populates="hospital", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Hospital({self.name})"


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)


class HospitalCategory(Base):
    """A category a hospital offers, with an optional schedule replacing the hospital one."""
    __tablename__ = "hospital_categories"
    __table_args__ = (UniqueConstraint("hospital_id", "category_id", name="uq_hospital_category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hospital_id: Mapped[str] = mapped_column(ForeignKey("hospitals.id"), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)
    schedule: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    hospital: Mapped["Hospital"] = relationship(back_populates="service_list")
    category: Mapped["Category"] = relationship()


class Service(Base):
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    hospital_id: Mapped[str] = mapped_column(ForeignKey("hospitals.id"), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    hospital: Mapped["Hospital"] = relationship(back_populates="services")
    category: Mapped["Category"] = relationship()
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="service")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # No double booking: one live appointment per service and date.
        # Cancelled rows stay for history and do not hold the slot.
        Index(
            "uq_appointment_service_date_live",
            "service_id",
            "date",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
        Index("ix_appointment_hospital_date", "hospital_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"), nullable=False)
    hospital_id: Mapped[str] = mapped_column(ForeignKey("hospitals.id"), nullable=False)

    patient_name: Mapped[str] = mapped_column(String(160), nullable=False)
    patient_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    patient_email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # set by staff to hold a date without a patient; takes the slot like a booking
    blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), default=AppointmentStatus.SCHEDULED, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    service: Mapped["Service"] = relationship(back_populates="appointments")


class ErrorRecord(Base):
    """Unexpected failures collected for later inspection."""
    __tablename__ = "error_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
