"""
Meter photo storage tests.
"""

import pytest
from datetime import datetime

from backend.app.core.exceptions import ValidationError
from backend.app.services.storage import FileStorage, validate_image_upload, is_allowed_attachment


def test_meter_photo_path_layout():
    now = datetime(2025, 1, 31, 8, 0, 0)
    path = FileStorage.meter_photo_path("A/101", "electric", 2568, 1, "image/png", now=now)

    assert path.startswith("meters/2568-01/A_101_electric_")
    assert path.endswith(".png")


def test_save_and_delete(tmp_path):
    storage = FileStorage(str(tmp_path))
    storage.save("meters/2568-01/x.jpg", b"data")

    assert storage.exists("meters/2568-01/x.jpg")
    assert storage.delete("meters/2568-01/x.jpg") is True
    # Deleting again is not an error
    assert storage.delete("meters/2568-01/x.jpg") is False


def test_path_traversal_refused(tmp_path):
    storage = FileStorage(str(tmp_path / "uploads"))
    with pytest.raises(ValidationError):
        storage.resolve("../secrets.txt")


def test_upload_limits():
    validate_image_upload("image/jpeg", 1024)
    with pytest.raises(ValidationError):
        validate_image_upload("application/pdf", 1024)
    with pytest.raises(ValidationError):
        validate_image_upload("image/jpeg", 11 * 1024 * 1024)
    with pytest.raises(ValidationError):
        validate_image_upload("image/jpeg", 0)


@pytest.mark.asyncio
async def test_download_photo(client, staff_headers, db_session):
    from conftest import seed_utilities, seed_room, upload

    await seed_utilities(db_session)
    room = await seed_room(db_session)
    uploaded = await upload(client, staff_headers, room.id, "water", 12)
    photo_id = uploaded.json()["photo"]["id"]

    response = await client.get(f"/v1/meter-photos/{photo_id}/download", headers=staff_headers)

    assert response.status_code == 200
    assert response.content == b"\xff\xd8\xff\xe0fake-jpeg"


def test_announcement_file_path_layout():
    now = datetime(2025, 3, 4, 9, 30, 0)
    path = FileStorage.announcement_file_path("ประกาศ ค่าน้ำ.pdf", 2, now=now)

    assert path.startswith("announcements/2025-03/002_")
    assert path.endswith("_" * 13 + ".pdf")


def test_attachment_limits():
    assert is_allowed_attachment("application/pdf", 1024)
    assert is_allowed_attachment("image/png", 1024)
    assert not is_allowed_attachment("application/zip", 1024)
    assert not is_allowed_attachment("application/pdf", 0)
    assert not is_allowed_attachment("application/pdf", 51 * 1024 * 1024)
