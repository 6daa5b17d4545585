"""
Tests for meter reading reconciliation.

Start values come from the previous cycle's end value, first readings
bootstrap at zero usage, electric counters roll over and water readings
never go backwards.
"""

import pytest
from datetime import date
from sqlalchemy import select, func

from backend.app.core.exceptions import ValidationError
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.meter_reading import MeterReading
from backend.app.models.utility import UtilityRate
from backend.app.domain.billing.cycle_manager import BillingCycleManager
from backend.app.domain.billing.meter_reconciler import MeterReadingReconciler
from conftest import seed_utilities, seed_room, upload


async def record(db, room_id, year, month, utility, value):
    cycle = await BillingCycleManager.resolve_or_create(db, year, month)
    result = await MeterReadingReconciler.record_reading(db, room_id, cycle, utility, value)
    await db.commit()
    return result


@pytest.mark.asyncio
async def test_first_reading_bootstraps_at_zero_usage(client, staff_headers, db_session, upload_dir):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    response = await upload(client, staff_headers, room.id, "electric", 1500)

    assert response.status_code == 201
    data = response.json()
    assert data["reading"]["meter_start"] == 1500
    assert data["reading"]["meter_end"] == 1500
    assert data["reading"]["usage"] == 0
    assert data["reading"]["created"] is True
    assert data["photo"]["is_locked"] is False
    assert (upload_dir / data["photo"]["photo_path"]).is_file()


@pytest.mark.asyncio
async def test_electric_rollover_between_cycles(db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    await record(db_session, room.id, 2568, 1, "electric", 9823)
    result = await record(db_session, room.id, 2568, 2, "electric", 173)

    assert result.meter_start == 9823
    assert result.meter_end == 173
    assert result.usage == 350
    assert result.is_rollover is True
    assert result.amount == 2800


@pytest.mark.asyncio
async def test_year_boundary_uses_december_reading(db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    await record(db_session, room.id, 2567, 12, "water", 120)
    result = await record(db_session, room.id, 2568, 1, "water", 135)

    assert result.meter_start == 120
    assert result.usage == 15


@pytest.mark.asyncio
async def test_water_decrease_rejected_without_writes(db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await record(db_session, room.id, 2568, 1, "water", 500)

    cycle = await BillingCycleManager.resolve_or_create(db_session, 2568, 2)
    await db_session.commit()
    with pytest.raises(ValidationError):
        await MeterReadingReconciler.record_reading(db_session, room.id, cycle, "water", 400)
    await db_session.rollback()

    count = await db_session.execute(
        select(func.count(MeterReading.id)).where(MeterReading.cycle_id == cycle.id)
    )
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_failed_upload_removes_stored_file(client, staff_headers, db_session, upload_dir):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await record(db_session, room.id, 2568, 1, "water", 500)

    response = await upload(client, staff_headers, room.id, "water", 400, month=2)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"
    assert not list(upload_dir.rglob("*.jpg"))
    photos = await db_session.execute(select(func.count(MeterPhoto.id)))
    assert photos.scalar() == 0


@pytest.mark.asyncio
async def test_second_value_in_cycle_updates_end_only(db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await record(db_session, room.id, 2568, 1, "electric", 1000)

    first = await record(db_session, room.id, 2568, 2, "electric", 1100)
    second = await record(db_session, room.id, 2568, 2, "electric", 1150)

    assert first.created is True
    assert second.created is False
    assert second.reading_id == first.reading_id
    assert second.meter_start == 1000
    assert second.meter_end == 1150
    assert second.usage == 150


@pytest.mark.asyncio
async def test_later_cycle_is_not_a_previous_reading(db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    await record(db_session, room.id, 2568, 3, "electric", 2000)
    result = await record(db_session, room.id, 2568, 2, "electric", 1000)

    assert result.meter_start == 1000
    assert result.usage == 0


@pytest.mark.asyncio
async def test_electric_value_beyond_counter_rejected(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    response = await upload(client, staff_headers, room.id, "electric", 10000)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_rejects_unknown_utility_and_non_image(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    bad_type = await upload(client, staff_headers, room.id, "gas", 10)
    assert bad_type.status_code == 400

    not_image = await upload(
        client, staff_headers, room.id, "electric", 10,
        file=("notes.txt", b"hello", "text/plain")
    )
    assert not_image.status_code == 400
    assert not_image.json()["details"]["content_type"] == "text/plain"


@pytest.mark.asyncio
async def test_rate_in_force_on_cycle_end_date(db_session):
    electric, _ = await seed_utilities(db_session)
    db_session.add(UtilityRate(utility_type_id=electric.id, rate_per_unit=10.0, effective_date=date(2025, 2, 15)))
    await db_session.commit()
    room = await seed_room(db_session)

    await record(db_session, room.id, 2567, 12, "electric", 100)
    january = await record(db_session, room.id, 2568, 1, "electric", 200)
    february = await record(db_session, room.id, 2568, 2, "electric", 300)

    assert january.rate_per_unit == 8.0
    assert january.amount == 800
    assert february.rate_per_unit == 10.0
    assert february.amount == 1000


@pytest.mark.asyncio
async def test_manual_reading_and_period_listing(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)

    response = await client.post(
        "/v1/utility-readings",
        json={
            "room_id": room.id, "year": 2568, "month": 1,
            "utility_type": "electric", "meter_start": 100, "meter_end": 500
        },
        headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["usage"] == 400
    assert response.json()["amount"] == 3200

    listing = await client.get("/v1/utility-readings?year=2568&month=1", headers=staff_headers)
    assert listing.status_code == 200
    items = listing.json()
    assert len(items) == 1
    assert items[0]["room_number"] == "101"
    assert items[0]["is_billed"] is False


@pytest.mark.asyncio
async def test_latest_reading_preview(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await record(db_session, room.id, 2568, 1, "electric", 9823)

    response = await client.get(
        f"/v1/utility-readings/latest?room_id={room.id}&utility_type=electric&meter_value=173",
        headers=staff_headers
    )
    assert response.status_code == 200
    latest = response.json()[0]
    assert latest["meter_end"] == 9823
    assert latest["billing_month"] == 1
    assert latest["preview_usage"] == 350
    assert latest["preview_is_rollover"] is True
