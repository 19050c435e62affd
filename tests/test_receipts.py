"""
Tests for receipt issuance, rendering and download.
"""
import io
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from PIL import Image
from pymongo.errors import PyMongoError

from app.auth.session import create_access_token
from app.enrollments.database import attach_receipt_file, compare_and_set_status, get_enrollment
from app.errors import InvalidArgumentError, NotFoundError, UpstreamFailureError
from app.receipts import service as receipt_service
from app.receipts.renderer import HEIGHT, WIDTH, ReceiptContext, render_receipt_image
from app.receipts.service import generate_receipt_number, issue_receipt, load_receipt_image

from tests.conftest import auth


async def mark_paid(db: Any, enrollment_id: str) -> None:
    await compare_and_set_status(db, enrollment_id, "PENDING", {
        "payment_status": "PAID",
        "verified_at": datetime.utcnow(),
        "verified_by": "ADM_1",
        "amount": 1999.0,
    })


def test_receipt_number_format() -> None:
    number = generate_receipt_number("ENR_0123456789ABCDEF")

    prefix, millis, suffix = number.split("-")
    assert prefix == "REC"
    assert millis.isdigit()
    assert suffix.startswith("CDEF")
    assert len(suffix) == 8


def test_render_receipt_image() -> None:
    ctx = ReceiptContext(
        receipt_number="REC-1-ABCD1234",
        issued_at=datetime(2024, 3, 1, 10, 30),
        student_name="Asha Verma",
        student_email="asha@example.com",
        course_title="Python Foundations",
        course_price=1999.0,
        amount=1999.0,
        payment_status="PAID",
        verified_at=datetime(2024, 3, 1, 10, 29),
    )

    data = render_receipt_image(ctx)

    image = Image.open(io.BytesIO(data))
    assert image.format == "PNG"
    assert image.size == (WIDTH, HEIGHT)


class TestIssueReceipt:

    @pytest.mark.asyncio
    async def test_requires_paid(self, seeded_db: Any, storage: Any, enrollment: Any) -> None:
        with pytest.raises(InvalidArgumentError):
            await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        reloaded = await get_enrollment(seeded_db, enrollment.enrollment_id)
        assert reloaded.receipt is None

    @pytest.mark.asyncio
    async def test_missing_enrollment(self, seeded_db: Any, storage: Any) -> None:
        with pytest.raises(NotFoundError):
            await issue_receipt(seeded_db, storage, "ENR_MISSING")

    @pytest.mark.asyncio
    async def test_issued_once(self, seeded_db: Any, storage: Any, enrollment: Any) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)

        first = await issue_receipt(seeded_db, storage, enrollment.enrollment_id, issued_by="ADM_1")
        second = await issue_receipt(seeded_db, storage, enrollment.enrollment_id, issued_by="ADM_1")

        assert first.receipt_number == second.receipt_number
        assert first.file_id == second.file_id
        assert first.url == f"/api/receipts/{first.receipt_number}"
        assert storage.save_calls == 1

    @pytest.mark.asyncio
    async def test_retry_after_failure_keeps_number(
        self, seeded_db: Any, storage: Any, enrollment: Any
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        working_save = storage.save
        storage.save = AsyncMock(side_effect=OSError("disk full"))

        with pytest.raises(UpstreamFailureError) as exc_info:
            await issue_receipt(seeded_db, storage, enrollment.enrollment_id)
        assert exc_info.value.retryable is True

        reserved = (await get_enrollment(seeded_db, enrollment.enrollment_id)).receipt
        assert reserved is not None
        assert reserved.file_id is None

        storage.save = working_save
        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        assert receipt.receipt_number == reserved.receipt_number
        assert receipt.file_id in storage.files

    @pytest.mark.asyncio
    async def test_reservation_failure_is_retryable(
        self, seeded_db: Any, storage: Any, enrollment: Any, monkeypatch: Any
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        monkeypatch.setattr(
            receipt_service, "reserve_receipt", AsyncMock(side_effect=PyMongoError("write timeout"))
        )

        with pytest.raises(UpstreamFailureError) as exc_info:
            await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        assert exc_info.value.retryable is True
        assert storage.save_calls == 0

    @pytest.mark.asyncio
    async def test_losing_attach_discards_own_file(
        self, seeded_db: Any, storage: Any, enrollment: Any
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        working_save = storage.save

        async def save_after_competitor(filename, data, metadata=None):
            # Another issuer attaches its file while this one is rendering
            await attach_receipt_file(seeded_db, enrollment.enrollment_id, "competitor-file", "/api/receipts/x")
            return await working_save(filename, data, metadata)

        storage.save = save_after_competitor

        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        assert receipt.file_id == "competitor-file"
        assert storage.files == {}


class TestLoadReceipt:

    @pytest.mark.asyncio
    async def test_unknown_receipt(self, seeded_db: Any, storage: Any) -> None:
        with pytest.raises(NotFoundError):
            await load_receipt_image(seeded_db, storage, "REC-0-NOPE")

    @pytest.mark.asyncio
    async def test_storage_unavailable(self, seeded_db: Any, storage: Any, enrollment: Any) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)
        storage.files.clear()

        with pytest.raises(UpstreamFailureError):
            await load_receipt_image(seeded_db, storage, receipt.receipt_number)


class TestDownloadEndpoint:

    @pytest.mark.asyncio
    async def test_owner_downloads_png(
        self, client: Any, seeded_db: Any, storage: Any, enrollment: Any, student_token: str
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        response = await client.get(f"/api/receipts/{receipt.receipt_number}", headers=auth(student_token))

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == storage.files[receipt.file_id]

    @pytest.mark.asyncio
    async def test_admin_downloads_any(
        self, client: Any, seeded_db: Any, storage: Any, enrollment: Any, admin_token: str
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)

        response = await client.get(f"/api/receipts/{receipt.receipt_number}", headers=auth(admin_token))

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_other_student_gets_not_found(
        self, client: Any, seeded_db: Any, storage: Any, enrollment: Any
    ) -> None:
        await mark_paid(seeded_db, enrollment.enrollment_id)
        receipt = await issue_receipt(seeded_db, storage, enrollment.enrollment_id)
        other = create_access_token("STU_2", "student")

        response = await client.get(f"/api/receipts/{receipt.receipt_number}", headers=auth(other))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: Any) -> None:
        response = await client.get("/api/receipts/REC-0-NOPE")

        assert response.status_code == 401
