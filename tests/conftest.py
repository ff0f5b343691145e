"""Shared test fixtures."""
from __future__ import annotations

import itertools
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from hospital_booking import catalogue, db

# 2030-01-01 is a Tuesday
TUESDAY = datetime(2030, 1, 8)
SATURDAY = datetime(2030, 1, 5)
# fixed "now" for the booking service: well before every test date
NOW = datetime(2029, 12, 31, 8, 0)

WEEKDAYS_9_17 = {"weekdays": {"start": "09:00", "end": "17:00"}}

_counter = itertools.count(1)


@pytest.fixture
def database(tmp_path):
    """A fresh SQLite file per test."""
    db.configure(f"sqlite:///{tmp_path / 'booking.sqlite'}")
    db.init_db()
    yield
    db.engine.dispose()


def _register(schedule: dict | None = None) -> dict:
    n = next(_counter)
    email = f"hospital{n}@test.local"
    user_id, hospital_id = catalogue.register_hospital(
        email, "secret", f"Hospital {n}", f"{n} Test Street", f"+1-555-{n:04d}", schedule or WEEKDAYS_9_17
    )
    category_id = catalogue.add_category_schedule(hospital_id, "General", None)
    service_id = catalogue.create_service(hospital_id, category_id, "Consultation", 50)
    return {
        "email": email,
        "user_id": user_id,
        "hospital_id": hospital_id,
        "category_id": category_id,
        "service_id": service_id,
    }


@pytest.fixture
def make_hospital(database):
    """Factory: a hospital (weekdays 09:00-17:00) with one category and one service."""
    return _register


@pytest.fixture
def hospital(make_hospital) -> dict:
    return make_hospital()


@pytest.fixture
def client(database):
    from hospital_booking.api_main import app

    with TestClient(app) as c:
        app.state.booking.clock = lambda: NOW
        yield c


@pytest.fixture
def api_hospital(client):
    """Factory registering a hospital through the API; returns ids and auth headers."""

    def _create(schedule: dict | None = None) -> dict:
        n = next(_counter)
        r = client.post(
            "/api/hospitals",
            json={
                "email": f"staff{n}@test.local",
                "password": "secret",
                "passwordCheck": "secret",
                "name": f"Api Hospital {n}",
                "address": f"{n} Api Street",
                "phone": f"+1-777-{n:04d}",
                "schedule": schedule or WEEKDAYS_9_17,
            },
        )
        assert r.status_code == 201, r.text
        body = r.json()
        headers = {"Authorization": f"Bearer {body['token']}"}

        r = client.post("/api/hospitals/me/categories", json={"category": "General"}, headers=headers)
        assert r.status_code == 201, r.text
        category_id = r.json()["categoryId"]

        r = client.post(
            "/api/services",
            json={"categoryId": category_id, "name": "Consultation", "price": 50},
            headers=headers,
        )
        assert r.status_code == 201, r.text
        return {
            "token": body["token"],
            "headers": headers,
            "hospital_id": body["hospital"]["id"],
            "category_id": category_id,
            "service_id": r.json()["service"]["id"],
        }

    return _create
