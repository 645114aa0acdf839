from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

from dateutil.parser import isoparse
from sqlalchemy.exc import OperationalError

from appointment_service.booking import create_reservation, month_bounds
from appointment_service.db import SessionLocal
from appointment_service.errors import CatalogUnavailableError, ConflictError
from appointment_service.tests.support import (
    HAIRCUT_ID,
    MASSAGE_ID,
    STORE_ID,
    booking_body,
    owner_headers,
    run,
    utc,
)


def _store_calendar(client) -> list[dict]:
    r = client.get("/reservations", params={"store": STORE_ID}, headers=owner_headers())
    assert r.status_code == 200
    return r.json()


def test_haircut_scenario(client) -> None:
    first = client.post("/reservations", json=booking_body("2025-01-10T09:00"))
    assert first.status_code == 201
    body = first.json()
    assert isoparse(body["start"]) == utc(2025, 1, 10, 9)
    assert isoparse(body["end"]) == utc(2025, 1, 10, 10)
    assert body["status"] == "confirmed"
    assert body["duration_minutes"] == 60
    assert body["reminder_sent"] is False

    overlapping = client.post("/reservations", json=booking_body("2025-01-10T09:30"))
    assert overlapping.status_code == 409

    touching = client.post("/reservations", json=booking_body("2025-01-10T10:00"))
    assert touching.status_code == 201


def test_conflict_is_distinguishable_from_generic_errors(client) -> None:
    client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    r = client.post("/reservations", json=booking_body("2025-01-10T09:59"))

    assert r.status_code == 409
    assert r.json()["code"] == "slot_unavailable"


def test_rejected_booking_leaves_calendar_untouched(client) -> None:
    client.post("/reservations", json=booking_body("2025-01-10T09:00"))
    client.post("/reservations", json=booking_body("2025-01-10T11:00"))
    before = _store_calendar(client)

    r = client.post("/reservations", json=booking_body("2025-01-10T10:30", customer_name="Bruno"))

    assert r.status_code == 409
    assert _store_calendar(client) == before


def test_unknown_store_or_service_is_not_found(client) -> None:
    r = client.post("/reservations", json=booking_body("2025-01-10T09:00", store_id="nope"))
    assert r.status_code == 404
    assert r.json()["detail"] == "Store not found"

    r = client.post("/reservations", json=booking_body("2025-01-10T09:00", service_id="nope"))
    assert r.status_code == 404
    assert r.json()["detail"] == "Service not found"


def test_service_of_another_store_is_not_found(client) -> None:
    r = client.post("/reservations", json=booking_body("2025-01-10T09:00", service_id=MASSAGE_ID))

    assert r.status_code == 404


def test_inactive_service_is_not_found(client, catalog) -> None:
    catalog.services[HAIRCUT_ID] = catalog.services[HAIRCUT_ID].model_copy(update={"is_active": False})

    r = client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert r.status_code == 404


def test_zero_duration_service_is_rejected(client, catalog) -> None:
    catalog.services[HAIRCUT_ID] = catalog.services[HAIRCUT_ID].model_copy(update={"duration_minutes": 0})

    r = client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert r.status_code == 422
    assert r.json()["code"] == "invalid_request"


def test_blank_contact_fields_are_rejected(client) -> None:
    assert client.post("/reservations", json=booking_body("2025-01-10T09:00", customer_name="  ")).status_code == 422
    body = booking_body("2025-01-10T09:00")
    del body["customer_phone"]
    assert client.post("/reservations", json=body).status_code == 422
    assert client.post("/reservations", json=booking_body("not-a-date")).status_code == 422


def test_email_and_notes_are_optional(client) -> None:
    r = client.post("/reservations", json=booking_body("2025-01-10T09:00", customer_email="", notes="first visit"))

    assert r.status_code == 201
    assert r.json()["customer_email"] is None
    assert r.json()["notes"] == "first visit"


def test_snapshot_survives_catalog_edits(client, catalog) -> None:
    created = client.post("/reservations", json=booking_body("2025-01-10T09:00")).json()

    catalog.services[HAIRCUT_ID] = catalog.services[HAIRCUT_ID].model_copy(
        update={"name": "Premium Haircut", "price": 120, "duration_minutes": 90}
    )

    stored = client.get(f"/reservations/{created['reservation_id']}", headers=owner_headers()).json()
    assert stored["service_name"] == "Haircut"
    assert stored["service_price"] == 80
    assert isoparse(stored["end"]) == utc(2025, 1, 10, 10)


def test_manual_approval_books_as_pending(client) -> None:
    with patch("appointment_service.booking.BOOKING_REQUIRES_APPROVAL", True):
        r = client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert r.status_code == 201
    assert r.json()["status"] == "pending"


def test_pending_reservations_still_block_the_slot(client) -> None:
    with patch("appointment_service.booking.BOOKING_REQUIRES_APPROVAL", True):
        client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert client.post("/reservations", json=booking_body("2025-01-10T09:30")).status_code == 409


def test_free_plan_monthly_limit(client, catalog) -> None:
    catalog.stores[STORE_ID] = catalog.stores[STORE_ID].model_copy(update={"plan": "free"})

    with patch("appointment_service.booking.FREE_PLAN_MONTHLY_LIMIT", 2):
        assert client.post("/reservations", json=booking_body("2025-01-10T13:00")).status_code == 201
        assert client.post("/reservations", json=booking_body("2025-01-20T13:00")).status_code == 201

        limited = client.post("/reservations", json=booking_body("2025-01-25T13:00"))
        next_month = client.post("/reservations", json=booking_body("2025-02-03T13:00"))

    assert limited.status_code == 403
    assert limited.json()["code"] == "plan_limit_reached"
    assert next_month.status_code == 201


def test_month_bounds_follow_business_timezone() -> None:
    # 02:00 UTC on Feb 1st is still January 31st in Sao Paulo
    first, nxt = month_bounds(utc(2025, 2, 1, 2))

    assert first == utc(2025, 1, 1, 3)
    assert nxt == utc(2025, 2, 1, 3)


def test_catalog_outage_is_reported(client) -> None:
    with patch("appointment_service.booking.fetch_store", new=AsyncMock(side_effect=CatalogUnavailableError())):
        r = client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert r.status_code == 502
    assert r.json()["code"] == "catalog_unavailable"


def test_storage_failure_is_a_generic_retryable_error(client) -> None:
    boom = OperationalError("SELECT 1", {}, Exception("database is locked"))
    with patch("appointment_service.booking.has_conflict", new=AsyncMock(side_effect=boom)):
        r = client.post("/reservations", json=booking_body("2025-01-10T09:00"))

    assert r.status_code == 503
    assert r.json()["code"] == "storage_unavailable"
    assert _store_calendar(client) == []


async def _book(start) -> object:
    async with SessionLocal() as db:
        return await create_reservation(
            db,
            store_id=STORE_ID,
            service_id=HAIRCUT_ID,
            start=start,
            customer_name="Ana",
            customer_phone="1",
        )


async def _race() -> list:
    return await asyncio.gather(
        _book(utc(2025, 1, 10, 9)),
        _book(utc(2025, 1, 10, 9, 30)),
        return_exceptions=True,
    )


def test_concurrent_overlapping_bookings_only_one_wins(catalog) -> None:
    results = run(_race())

    conflicts = [r for r in results if isinstance(r, ConflictError)]
    booked = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(booked) == 1
