"""
Integration tests for the monthly billing run.

Tests bill generation, equal split of utilities, once-per-tenant
idempotency, photo locking, bill corrections and the Excel export.
"""

import pytest
from io import BytesIO
from datetime import date
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from openpyxl import load_workbook

from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.meter_reading import MeterReading
from backend.app.domain.billing.bill_engine import BillComputationEngine
from backend.app.services.bill_export import XLSX_MEDIA_TYPE
from conftest import seed_utilities, seed_room, seed_tenant, upload

RUN = {"year": 2568, "month": 1}


async def set_reading(client, headers, room_id, utility, start, end, month=1):
    response = await client.post(
        "/v1/utility-readings",
        json={
            "room_id": room_id, "year": 2568, "month": month,
            "utility_type": utility, "meter_start": start, "meter_end": end
        },
        headers=headers
    )
    assert response.status_code == 200
    return response.json()


async def count(db_session, column):
    result = await db_session.execute(select(func.count(column)))
    return result.scalar()


# TEST 1: Reference data guard
@pytest.mark.asyncio
async def test_missing_utility_types_aborts_run(client, staff_headers, db_session):
    """Without electric/water rows the run fails and writes nothing."""
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)

    response = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    assert response.status_code == 500
    assert response.json()["error_code"] == "ERR_REF_001"
    assert set(response.json()["details"]["missing"]) == {"electric", "water"}
    assert await count(db_session, BillingCycle.id) == 0
    assert await count(db_session, Bill.id) == 0


# TEST 2: Equal split
@pytest.mark.asyncio
async def test_utilities_split_evenly_fee_per_tenant(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room, first_name="เอ")
    await seed_tenant(db_session, room, first_name="บี")
    await set_reading(client, staff_headers, room.id, "electric", 100, 200)

    response = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    assert response.status_code == 200
    assert response.json()["bills_created"] == 2

    bills = await client.get("/v1/bills?year=2568&month=1", headers=staff_headers)
    assert bills.status_code == 200
    items = bills.json()
    assert len(items) == 2
    for item in items:
        assert item["maintenance_fee"] == 1000
        assert item["electric_amount"] == 400
        assert item["water_amount"] == 0
        assert item["total_amount"] == 1400
        assert item["status"] == "draft"
        assert item["bill_number"] == f"B-2025-01-{item['id']:05d}"


@pytest.mark.asyncio
async def test_custom_maintenance_fee(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)
    await set_reading(client, staff_headers, room.id, "water", 10, 15)

    response = await client.post(
        "/v1/billing/run", json={**RUN, "maintenance_fee": 500}, headers=staff_headers
    )
    assert response.status_code == 200

    bill = (await client.get("/v1/bills?year=2568&month=1", headers=staff_headers)).json()[0]
    assert bill["maintenance_fee"] == 500
    assert bill["water_amount"] == 90
    assert bill["total_amount"] == 590


# TEST 3: Once per tenant
@pytest.mark.asyncio
async def test_rerun_only_bills_new_contracts(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session, max_occupants=3)
    await seed_tenant(db_session, room, first_name="เอ")
    await seed_tenant(db_session, room, first_name="บี")

    first = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert first.json()["bills_created"] == 2

    second = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert second.status_code == 200
    assert second.json()["bills_created"] == 0
    assert second.json()["cycle_id"] == first.json()["cycle_id"]

    await seed_tenant(db_session, room, first_name="ซี")
    third = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert third.json()["bills_created"] == 1
    assert await count(db_session, Bill.id) == 3


@pytest.mark.asyncio
async def test_ended_contracts_are_not_billed(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)
    leaving = await seed_tenant(db_session, room, first_name="ย้ายออก")

    contracts = await client.get(f"/v1/contracts?tenant_id={leaving.id}", headers=staff_headers)
    contract_id = contracts.json()[0]["id"]
    ended = await client.delete(f"/v1/contracts/{contract_id}", headers=staff_headers)
    assert ended.json()["status"] == "ended"

    response = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert response.json()["bills_created"] == 1


# TEST 4: Photos lock with the bill
@pytest.mark.asyncio
async def test_billing_locks_photos_and_readings(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)

    uploaded = await upload(client, staff_headers, room.id, "electric", 1500)
    photo_id = uploaded.json()["photo"]["id"]

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert run.json()["photos_linked"] == 1

    photos = await client.get(f"/v1/meter-photos?room_id={room.id}", headers=staff_headers)
    assert photos.json()[0]["is_locked"] is True
    assert photos.json()[0]["bill_id"] == run.json()["bill_ids"][0]

    patched = await client.patch(
        f"/v1/meter-photos/{photo_id}", json={"meter_value": 1600}, headers=staff_headers
    )
    assert patched.status_code == 409
    assert patched.json()["error_code"] == "ERR_STATE_001"

    deleted = await client.delete(f"/v1/meter-photos/{photo_id}", headers=staff_headers)
    assert deleted.status_code == 409

    reupload = await upload(client, staff_headers, room.id, "electric", 1700)
    assert reupload.status_code == 409

    manual = await client.post(
        "/v1/utility-readings",
        json={
            "room_id": room.id, "year": 2568, "month": 1,
            "utility_type": "electric", "meter_start": 1500, "meter_end": 1800
        },
        headers=staff_headers
    )
    assert manual.status_code == 409

    result = await db_session.execute(select(MeterReading.meter_end).where(MeterReading.room_id == room.id))
    assert result.scalar_one() == 1500


# TEST 5: Bill detail
@pytest.mark.asyncio
async def test_bill_detail_breakdown(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    tenant = await seed_tenant(db_session, room)
    await set_reading(client, staff_headers, room.id, "electric", 9823, 173)
    await set_reading(client, staff_headers, room.id, "water", 40, 50)

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    bill_id = run.json()["bill_ids"][0]

    response = await client.get(f"/v1/bills/{bill_id}", headers=staff_headers)

    assert response.status_code == 200
    detail = response.json()
    assert detail["bill_number"] == f"B-2025-01-{bill_id:05d}"
    assert detail["tenant_id"] == tenant.id
    assert detail["room_number"] == "101"
    assert detail["tenant_count"] == 1
    assert detail["electric"]["usage"] == 350
    assert detail["electric"]["is_rollover"] is True
    assert detail["electric"]["amount"] == 2800
    assert detail["water"]["amount"] == 180
    assert detail["utility_total"] == 2980
    assert detail["total_amount"] == 3980
    assert detail["stored_total_amount"] == 3980
    assert detail["due_date"] == "2025-02-15"


@pytest.mark.asyncio
async def test_detail_split_unchanged_after_roommate_moves_out(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room, first_name="เอ")
    leaver = await seed_tenant(db_session, room, first_name="บี")
    await set_reading(client, staff_headers, room.id, "electric", 100, 200)

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    bill_id = run.json()["bill_ids"][0]

    before = (await client.get(f"/v1/bills/{bill_id}", headers=staff_headers)).json()
    assert before["tenant_count"] == 2
    assert before["electric"]["amount"] == 400

    contracts = await client.get(f"/v1/contracts?tenant_id={leaver.id}", headers=staff_headers)
    ended = await client.delete(f"/v1/contracts/{contracts.json()[0]['id']}", headers=staff_headers)
    assert ended.status_code == 200

    after = (await client.get(f"/v1/bills/{bill_id}", headers=staff_headers)).json()
    assert after["tenant_count"] == 2
    assert after["electric"]["room_amount"] == 800
    assert after["electric"]["amount"] == 400
    assert after["total_amount"] == 1400
    assert after["total_amount"] == after["stored_total_amount"]


@pytest.mark.asyncio
async def test_roommates_see_the_same_photos(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room, first_name="เอ")
    await seed_tenant(db_session, room, first_name="บี")
    uploaded = await upload(client, staff_headers, room.id, "electric", 1500)
    photo_id = uploaded.json()["photo"]["id"]

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    assert run.json()["photos_linked"] == 1

    for bill_id in run.json()["bill_ids"]:
        detail = await client.get(f"/v1/bills/{bill_id}", headers=staff_headers)
        assert [photo["id"] for photo in detail.json()["photos"]] == [photo_id]


@pytest.mark.asyncio
async def test_unknown_bill_is_404(client, staff_headers):
    response = await client.get("/v1/bills/999", headers=staff_headers)
    assert response.status_code == 404


# TEST 6: Corrections
@pytest.mark.asyncio
async def test_bill_status_moves_forward_only(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)
    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    bill_id = run.json()["bill_ids"][0]

    corrected = await client.patch(
        f"/v1/bills/{bill_id}", json={"electric_amount": 250.5}, headers=staff_headers
    )
    assert corrected.status_code == 200
    assert corrected.json()["total_amount"] == 1250.5
    assert corrected.json()["subtotal_amount"] == 1250.5

    sent = await client.patch(f"/v1/bills/{bill_id}", json={"status": "sent"}, headers=staff_headers)
    assert sent.json()["status"] == "sent"

    back = await client.patch(f"/v1/bills/{bill_id}", json={"status": "draft"}, headers=staff_headers)
    assert back.status_code == 409

    not_draft = await client.delete(f"/v1/bills/{bill_id}", headers=staff_headers)
    assert not_draft.status_code == 409

    paid = await client.patch(f"/v1/bills/{bill_id}", json={"status": "paid"}, headers=staff_headers)
    assert paid.json()["status"] == "paid"

    frozen = await client.patch(f"/v1/bills/{bill_id}", json={"water_amount": 10}, headers=staff_headers)
    assert frozen.status_code == 409


@pytest.mark.asyncio
async def test_deleting_draft_bill_unlocks_photos(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)
    uploaded = await upload(client, staff_headers, room.id, "water", 30)
    photo_id = uploaded.json()["photo"]["id"]

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    bill_id = run.json()["bill_ids"][0]

    deleted = await client.delete(f"/v1/bills/{bill_id}", headers=staff_headers)
    assert deleted.status_code == 200

    patched = await client.patch(
        f"/v1/meter-photos/{photo_id}", json={"meter_value": 35}, headers=staff_headers
    )
    assert patched.status_code == 200
    assert patched.json()["photo"]["is_locked"] is False
    assert patched.json()["reading"]["meter_end"] == 35


@pytest.mark.asyncio
async def test_photos_stay_locked_while_roommate_bill_remains(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room, first_name="เอ")
    await seed_tenant(db_session, room, first_name="บี")
    uploaded = await upload(client, staff_headers, room.id, "electric", 1500)
    photo_id = uploaded.json()["photo"]["id"]

    run = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)
    first_bill, second_bill = run.json()["bill_ids"]

    deleted = await client.delete(f"/v1/bills/{first_bill}", headers=staff_headers)
    assert deleted.status_code == 200

    photos = await client.get(f"/v1/meter-photos?room_id={room.id}", headers=staff_headers)
    assert photos.json()[0]["bill_id"] == second_bill
    assert photos.json()[0]["is_locked"] is True

    removed = await client.delete(f"/v1/meter-photos/{photo_id}", headers=staff_headers)
    assert removed.status_code == 409

    patched = await client.patch(
        f"/v1/meter-photos/{photo_id}", json={"meter_value": 1600}, headers=staff_headers
    )
    assert patched.status_code == 409


@pytest.mark.asyncio
async def test_unlinked_photo_delete_refused_once_room_billed(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)
    await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    # Photo written straight to the table after the run, so it never got linked
    photo = MeterPhoto(
        room_id=room.id, utility_type=UtilityCode.WATER, meter_value=12,
        photo_path="meters/2568-01/late.jpg", reading_date=date(2025, 1, 31),
        billing_year=2568, billing_month=1
    )
    db_session.add(photo)
    await db_session.commit()

    response = await client.delete(f"/v1/meter-photos/{photo.id}", headers=staff_headers)

    assert response.status_code == 409
    assert response.json()["details"]["room_id"] == room.id


# TEST 7: Concurrency
@pytest.mark.asyncio
async def test_run_retries_once_after_collision(client, staff_headers, db_session, mocker):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room)

    original = BillComputationEngine.run_billing_for_cycle
    calls = []

    async def collide_once(db, year, month, maintenance_fee=None):
        calls.append(year)
        if len(calls) == 1:
            raise IntegrityError("INSERT INTO bills", {}, Exception("UNIQUE constraint failed"))
        return await original(db, year, month, maintenance_fee)

    mocker.patch.object(BillComputationEngine, "run_billing_for_cycle", side_effect=collide_once)

    response = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    assert response.status_code == 200
    assert response.json()["bills_created"] == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_run_gives_up_after_second_collision(client, staff_headers, mocker):
    mocker.patch.object(
        BillComputationEngine, "run_billing_for_cycle",
        side_effect=IntegrityError("INSERT INTO bills", {}, Exception("UNIQUE constraint failed"))
    )

    response = await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    assert response.status_code == 409


# TEST 8: Access
@pytest.mark.asyncio
async def test_regular_user_cannot_run_billing(client, regular_headers):
    response = await client.post("/v1/billing/run", json=RUN, headers=regular_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_tenant_sees_own_bills(client, staff_headers, regular_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    own = await seed_tenant(db_session, room, ad_username="tenant.user")
    await seed_tenant(db_session, room, first_name="เพื่อนร่วมห้อง")
    await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    response = await client.get("/v1/my/bills", headers=regular_headers)

    assert response.status_code == 200
    bills = response.json()
    assert len(bills) == 1
    assert bills[0]["tenant_id"] == own.id


@pytest.mark.asyncio
async def test_account_without_tenant_record_gets_404(client, regular_headers):
    response = await client.get("/v1/my/bills", headers=regular_headers)
    assert response.status_code == 404


# TEST 8: Excel export
@pytest.mark.asyncio
async def test_export_period_to_excel(client, staff_headers, db_session):
    await seed_utilities(db_session)
    room = await seed_room(db_session)
    await seed_tenant(db_session, room, first_name="เอ")
    await seed_tenant(db_session, room, first_name="บี")
    await set_reading(client, staff_headers, room.id, "electric", 100, 200)
    await client.post("/v1/billing/run", json=RUN, headers=staff_headers)

    response = await client.get("/v1/bills/export/excel?year=2568&month=1", headers=staff_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert 'filename="bills_2568_01.xlsx"' in response.headers["content-disposition"]

    sheet = load_workbook(BytesIO(response.content)).active
    assert sheet.title == "บิล มกราคม 2568"
    assert sheet.cell(row=3, column=3).value == "ชื่อ-สกุล"
    rows = [[cell.value for cell in row] for row in sheet.iter_rows(min_row=4, max_row=5)]
    assert [row[0] for row in rows] == [1, 2]
    assert [row[1] for row in rows] == ["อาคาร 1 - 101", "อาคาร 1 - 101"]
    assert [row[6] for row in rows] == [100, 100]
    assert [row[8] for row in rows] == [400, 400]
    assert [row[14] for row in rows] == [1400, 1400]
    assert sheet.cell(row=6, column=1).value == "รวม"
    assert sheet.cell(row=6, column=15).value == "=SUM(O4:O5)"


@pytest.mark.asyncio
async def test_export_empty_period_is_404(client, staff_headers):
    response = await client.get("/v1/bills/export/excel?year=2568&month=2", headers=staff_headers)
    assert response.status_code == 404
