import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from hospital_booking.errors import ConflictError, NotFoundError
from hospital_booking.models import AppointmentStatus
from hospital_booking.store import AppointmentDraft, AppointmentPatch, AppointmentStore, PatientInfo

TUESDAY_10 = datetime(2030, 1, 8, 10, 0)


def draft(hospital: dict, date: datetime = TUESDAY_10, name: str = "Ann Lee") -> AppointmentDraft:
    return AppointmentDraft(
        service_id=hospital["service_id"],
        hospital_id=hospital["hospital_id"],
        patient=PatientInfo(name, "+1-555-1234"),
        date=date,
    )


def test_create_and_list(hospital):
    store = AppointmentStore()
    view = store.create(draft(hospital))

    assert view.status == AppointmentStatus.SCHEDULED
    assert store.list_appointed_dates(hospital["service_id"]) == [TUESDAY_10]
    assert [a.id for a in store.list_by_hospital(hospital["hospital_id"])] == [view.id]
    assert view.as_dict()["serviceId"] == hospital["service_id"]


def test_same_slot_twice_conflicts(hospital):
    store = AppointmentStore()
    store.create(draft(hospital))
    with pytest.raises(ConflictError):
        store.create(draft(hospital, name="Bob Ray"))
    assert store.list_appointed_dates(hospital["service_id"]) == [TUESDAY_10]


def test_same_date_on_another_service_is_fine(make_hospital):
    a, b = make_hospital(), make_hospital()
    store = AppointmentStore()
    store.create(draft(a))
    store.create(draft(b))
    assert store.list_appointed_dates(b["service_id"]) == [TUESDAY_10]


def test_concurrent_creates_for_one_slot(hospital):
    store = AppointmentStore()
    workers = 4
    barrier = threading.Barrier(workers)

    def attempt(i: int):
        barrier.wait()
        try:
            return store.create(draft(hospital, name=f"Patient {i}"))
        except ConflictError:
            return None

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    assert sum(r is not None for r in results) == 1
    assert store.list_appointed_dates(hospital["service_id"]) == [TUESDAY_10]


def test_cancelled_slot_can_be_booked_again(hospital):
    store = AppointmentStore()
    first = store.create(draft(hospital))
    store.remove(first.id, hospital["hospital_id"])

    assert store.list_appointed_dates(hospital["service_id"]) == []
    second = store.create(draft(hospital, name="Bob Ray"))
    assert second.id != first.id


def test_remove_is_owner_scoped(make_hospital):
    owner, other = make_hospital(), make_hospital()
    store = AppointmentStore()
    view = store.create(draft(owner))

    with pytest.raises(NotFoundError):
        store.remove(view.id, other["hospital_id"])
    assert store.get(view.id) is not None


def test_remove_twice_is_not_found(hospital):
    store = AppointmentStore()
    view = store.create(draft(hospital))
    removed = store.remove(view.id, hospital["hospital_id"])
    assert removed.status == AppointmentStatus.CANCELLED

    with pytest.raises(NotFoundError):
        store.remove(view.id, hospital["hospital_id"])
    with pytest.raises(NotFoundError):
        store.remove("does-not-exist", hospital["hospital_id"])


def test_update_date_checks_uniqueness(hospital):
    store = AppointmentStore()
    a = store.create(draft(hospital))
    b = store.create(draft(hospital, date=TUESDAY_10 + timedelta(hours=1)))

    with pytest.raises(ConflictError):
        store.update(b.id, hospital["hospital_id"], AppointmentPatch(date=TUESDAY_10))

    moved = store.update(a.id, hospital["hospital_id"], AppointmentPatch(date=TUESDAY_10 + timedelta(hours=2)))
    assert moved.date == TUESDAY_10 + timedelta(hours=2)
    assert store.list_appointed_dates(hospital["service_id"]) == [
        TUESDAY_10 + timedelta(hours=1),
        TUESDAY_10 + timedelta(hours=2),
    ]


def test_update_unknown_is_not_found(hospital):
    with pytest.raises(NotFoundError):
        AppointmentStore().update("nope", hospital["hospital_id"], AppointmentPatch(status=AppointmentStatus.CONFIRMED))
