"""
Booking use cases: create, update, cancel and the read paths around them.

Every request walks the same states:

    RECEIVED -> VALIDATED -> PERSISTED/UPDATED/REMOVED -> NOTIFIED
    RECEIVED -> REJECTED

Database work runs in the threadpool so the event loop keeps serving the
WebSocket sessions. Notification is best effort: once the store has
committed, a failed publish is logged and the booking still stands.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from starlette.concurrency import run_in_threadpool

from . import catalogue
from .availability import SLOT_TAKEN, Verdict, is_bookable, list_available_dates, normalize_slot
from .errors import ConflictError, NotFoundError, ValidationError
from .logging_config import get_logger
from .models import AppointmentStatus
from .notifier import APPOINTMENT_CREATED, APPOINTMENT_REMOVED, APPOINTMENT_UPDATED, Notifier
from .store import AppointmentDraft, AppointmentPatch, AppointmentStore, AppointmentView, PatientInfo

logger = get_logger(__name__)


class BookingState(enum.Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PERSISTED = "PERSISTED"
    UPDATED = "UPDATED"
    REMOVED = "REMOVED"
    NOTIFIED = "NOTIFIED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class BookingOutcome:
    state: BookingState
    appointment: AppointmentView
    message: str


class BookingService:

    def __init__(
        self,
        store: AppointmentStore,
        notifier: Notifier,
        slot_minutes: int = 30,
        max_range_days: int = 62,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.slot_step = timedelta(minutes=slot_minutes)
        self.max_range = timedelta(days=max_range_days)
        self.clock = clock

    # =========================
    # Commands
    # =========================
    async def create(self, service_id: str, date: datetime, patient: PatientInfo) -> BookingOutcome:
        log = logger.bind(flow="create", service_id=service_id)
        log.info("booking_state", state=BookingState.RECEIVED.value)

        try:
            _require_patient(patient)
            target = await run_in_threadpool(catalogue.get_service_target, service_id)
            slot = normalize_slot(date)
            booked = set(await run_in_threadpool(self.store.list_appointed_dates, service_id))
            _check(is_bookable(target.schedule, booked, slot, now=self.clock()))
            log.info("booking_state", state=BookingState.VALIDATED.value, date=slot.isoformat())

            draft = AppointmentDraft(service_id=service_id, hospital_id=target.hospital_id, patient=patient, date=slot)
            appointment = await run_in_threadpool(self.store.create, draft)
        except (ValidationError, ConflictError, NotFoundError) as e:
            log.info("booking_state", state=BookingState.REJECTED.value, reason=e.message)
            raise

        log.info("booking_state", state=BookingState.PERSISTED.value, appointment_id=appointment.id)
        state = await self._notify(appointment, APPOINTMENT_CREATED, BookingState.PERSISTED)
        return BookingOutcome(state, appointment, "Appointment booked")

    async def update(
        self,
        appointment_id: str,
        hospital_id: str,
        date: datetime | None = None,
        status: AppointmentStatus | None = None,
        patient: PatientInfo | None = None,
    ) -> BookingOutcome:
        log = logger.bind(flow="update", appointment_id=appointment_id)
        log.info("booking_state", state=BookingState.RECEIVED.value)

        try:
            current = await run_in_threadpool(self.store.get, appointment_id)
            if current is None or current.hospital_id != hospital_id:
                raise NotFoundError("Appointment not found")
            if status == AppointmentStatus.CANCELLED:
                # cancelling has its own flow and event
                raise ValidationError("Use DELETE to cancel an appointment")
            if patient is not None:
                _require_patient(patient)

            slot = None
            if date is not None:
                slot = normalize_slot(date)
                if slot != current.date:
                    schedule = await run_in_threadpool(catalogue.get_service_schedule, current.service_id)
                    booked = set(await run_in_threadpool(self.store.list_appointed_dates, current.service_id))
                    booked.discard(current.date)
                    _check(is_bookable(schedule, booked, slot, now=self.clock()))
            log.info("booking_state", state=BookingState.VALIDATED.value)

            patch = AppointmentPatch(date=slot, status=status, patient=patient)
            appointment = await run_in_threadpool(self.store.update, appointment_id, hospital_id, patch)
        except (ValidationError, ConflictError, NotFoundError) as e:
            log.info("booking_state", state=BookingState.REJECTED.value, reason=e.message)
            raise

        log.info("booking_state", state=BookingState.UPDATED.value)
        state = await self._notify(appointment, APPOINTMENT_UPDATED, BookingState.UPDATED)
        return BookingOutcome(state, appointment, "Appointment updated")

    async def cancel(self, appointment_id: str, hospital_id: str) -> BookingOutcome:
        log = logger.bind(flow="cancel", appointment_id=appointment_id)
        log.info("booking_state", state=BookingState.RECEIVED.value)

        try:
            appointment = await run_in_threadpool(self.store.remove, appointment_id, hospital_id)
        except NotFoundError as e:
            log.info("booking_state", state=BookingState.REJECTED.value, reason=e.message)
            raise

        log.info("booking_state", state=BookingState.REMOVED.value)
        state = await self._notify(appointment, APPOINTMENT_REMOVED, BookingState.REMOVED)
        return BookingOutcome(state, appointment, "Appointment cancelled")

    async def block_date(self, service_id: str, hospital_id: str, date: datetime) -> BookingOutcome:
        """
        Staff mark a date of their own service as appointed without a patient.

        The block goes through the same checks and the same uniqueness index
        as a booking, so it shows up in the appointed dates and can be lifted
        with `cancel`.
        """
        log = logger.bind(flow="block", service_id=service_id)
        log.info("booking_state", state=BookingState.RECEIVED.value)

        try:
            owner = await run_in_threadpool(catalogue.get_hospital_for_service, service_id)
            if owner != hospital_id:
                raise NotFoundError("Service not found")
            schedule = await run_in_threadpool(catalogue.get_service_schedule, service_id)
            slot = normalize_slot(date)
            booked = set(await run_in_threadpool(self.store.list_appointed_dates, service_id))
            _check(is_bookable(schedule, booked, slot, now=self.clock()))
            log.info("booking_state", state=BookingState.VALIDATED.value, date=slot.isoformat())

            draft = AppointmentDraft(
                service_id=service_id,
                hospital_id=hospital_id,
                patient=PatientInfo("", ""),
                date=slot,
                blocked=True,
            )
            appointment = await run_in_threadpool(self.store.create, draft)
        except (ValidationError, ConflictError, NotFoundError) as e:
            log.info("booking_state", state=BookingState.REJECTED.value, reason=e.message)
            raise

        log.info("booking_state", state=BookingState.PERSISTED.value, appointment_id=appointment.id)
        state = await self._notify(appointment, APPOINTMENT_CREATED, BookingState.PERSISTED)
        return BookingOutcome(state, appointment, "Date marked as appointed")

    # =========================
    # Queries
    # =========================
    async def list_for_hospital(self, hospital_id: str) -> list[AppointmentView]:
        return await run_in_threadpool(self.store.list_by_hospital, hospital_id)

    async def appointed_dates(self, service_id: str) -> list[datetime]:
        return await run_in_threadpool(self.store.list_appointed_dates, service_id)

    async def available_dates(self, service_id: str, start: datetime, end: datetime) -> list[datetime]:
        start, end = normalize_slot(start), normalize_slot(end)
        if end <= start:
            raise ValidationError("The range end must be after its start")
        if end - start > self.max_range:
            raise ValidationError(f"The range cannot exceed {self.max_range.days} days")

        schedule = await run_in_threadpool(catalogue.get_service_schedule, service_id)
        booked = await run_in_threadpool(self.store.list_appointed_dates, service_id)
        return list(list_available_dates(schedule, booked, start, end, self.slot_step, now=self.clock()))

    # =========================
    # Internals
    # =========================
    async def _notify(self, appointment: AppointmentView, event: str, done: BookingState) -> BookingState:
        try:
            await self.notifier.publish(appointment.hospital_id, event, appointment.as_dict())
        except Exception:
            logger.exception("notification_failed", appointment_id=appointment.id, notify_event=event)
            return done
        logger.info("booking_state", state=BookingState.NOTIFIED.value, appointment_id=appointment.id)
        return BookingState.NOTIFIED


def _require_patient(patient: PatientInfo) -> None:
    if not patient.name.strip() or not patient.phone.strip():
        raise ValidationError("Fill in all fields")


def _check(verdict: Verdict) -> None:
    if verdict.ok:
        return
    if verdict.reason == SLOT_TAKEN:
        raise ConflictError()
    raise ValidationError(verdict.reason)
