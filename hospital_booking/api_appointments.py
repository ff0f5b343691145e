from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from . import catalogue
from .auth_models import Role
from .auth_service import identity_from_token
from .booking import BookingService
from .dependencies import get_booking_service, get_current_hospital_id
from .errors import ValidationError
from .logging_config import get_logger
from .models import AppointmentStatus
from .store import PatientInfo

logger = get_logger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["appointments"])
ws_router = APIRouter(tags=["realtime"])



# Schemas

class PatientInfoIn(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: str | None = None

    def to_patient(self) -> PatientInfo:
        return PatientInfo(self.name.strip(), self.phone.strip(), self.email)


class AppointmentCreateIn(BaseModel):
    # public booking: the patient does not need an account
    model_config = ConfigDict(populate_by_name=True)

    service_id: str = Field(..., alias="serviceId", min_length=1)
    date: datetime
    patient_info: PatientInfoIn = Field(..., alias="patientInfo")


class AppointedDateIn(BaseModel):
    date: datetime


class AppointmentUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: datetime | None = None
    status: AppointmentStatus | None = None
    patient_info: PatientInfoIn | None = Field(None, alias="patientInfo")



# REST endpoints

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreateIn,
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    outcome = await booking.create(payload.service_id, payload.date, payload.patient_info.to_patient())
    return {"message": outcome.message, "appointment": outcome.appointment.as_dict()}


@router.get("")
async def hospital_appointments(
    hospital_id: str = Depends(get_current_hospital_id),
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    appointments = await booking.list_for_hospital(hospital_id)
    return {"appointments": [a.as_dict() for a in appointments]}


@router.get("/appointed-dates/{service_id}")
async def appointed_dates(
    service_id: str,
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    dates = await booking.appointed_dates(service_id)
    return {"appointedDates": [d.isoformat() for d in dates]}


@router.post("/appointed-dates/{service_id}", status_code=status.HTTP_201_CREATED)
async def mark_appointed_date(
    service_id: str,
    payload: AppointedDateIn,
    hospital_id: str = Depends(get_current_hospital_id),
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    outcome = await booking.block_date(service_id, hospital_id, payload.date)
    return {"message": outcome.message, "appointment": outcome.appointment.as_dict()}


@router.get("/available-dates/{service_id}")
async def available_dates(
    service_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    dates = await booking.available_dates(service_id, start, end)
    return {"availableDates": [d.isoformat() for d in dates]}


@router.delete("/{appointment_id}")
async def remove_appointment(
    appointment_id: str,
    hospital_id: str = Depends(get_current_hospital_id),
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    outcome = await booking.cancel(appointment_id, hospital_id)
    return {"message": outcome.message}


@router.put("/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdateIn,
    hospital_id: str = Depends(get_current_hospital_id),
    booking: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    if payload.date is None and payload.status is None and payload.patient_info is None:
        raise ValidationError("Nothing to update")

    outcome = await booking.update(
        appointment_id,
        hospital_id,
        date=payload.date,
        status=payload.status,
        patient=payload.patient_info.to_patient() if payload.patient_info else None,
    )
    return {"message": outcome.message, "appointment": outcome.appointment.as_dict()}



# Live channel
#
# client -> {"event": "join", "data": "<hospitalId>"}   server -> {"event": "joined", ...}
# client -> {"event": "appoint", "data": {...}}         advisory, the REST create already published
# client -> {"event": "ping"}                           server -> {"event": "pong"}
# server -> {"event": "watch", "data": {"type": ..., "appointment": {...}}}

async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"message": message}})


@ws_router.websocket("/ws")
async def watch_socket(websocket: WebSocket, token: str = Query("")) -> None:
    user = await run_in_threadpool(identity_from_token, token) if token else None
    own_hospital_id = None
    if user is not None and user.role == Role.HOSPITAL:
        own_hospital_id = await run_in_threadpool(catalogue.get_hospital_id_for_user, user.id)
    if own_hospital_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    notifier = websocket.app.state.notifier
    log = logger.bind(hospital_id=own_hospital_id)
    log.info("socket_connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "Malformed message")
                continue
            if not isinstance(message, dict):
                await _send_error(websocket, "Malformed message")
                continue

            event = message.get("event")
            if event == "join":
                if message.get("data") != own_hospital_id:
                    await _send_error(websocket, "Insufficient permissions")
                    continue
                await notifier.subscribe(websocket, own_hospital_id)
                await websocket.send_json({"event": "joined", "data": own_hospital_id})
            elif event == "appoint":
                log.debug("appoint_ignored")
            elif event == "ping":
                await websocket.send_json({"event": "pong"})
            else:
                await _send_error(websocket, f"Unknown event: {event}")
    except WebSocketDisconnect:
        log.info("socket_disconnected")
    finally:
        await notifier.unsubscribe(websocket)
