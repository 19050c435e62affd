"""
Receipt Issuance
Creates the proof-of-payment for a PAID enrollment exactly once
"""

import logging
import secrets
import time
from datetime import datetime
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.config import get_config
from app.enrollments.database import (
    attach_receipt_file, get_enrollment, get_enrollment_by_receipt, reserve_receipt
)
from app.enrollments.models import Enrollment, PaymentStatus, Receipt
from app.errors import InvalidArgumentError, NotFoundError, UpstreamFailureError
from app.receipts.renderer import ReceiptContext, render_receipt_image
from app.receipts.storage import ReceiptStorage

logger = logging.getLogger(__name__)

UPSTREAM_ERRORS = (OSError, ValueError, PyMongoError)


def generate_receipt_number(enrollment_id: str) -> str:
    return f"REC-{int(time.time() * 1000)}-{enrollment_id[-4:].upper()}{secrets.token_hex(2).upper()}"


def receipt_url(receipt_number: str) -> str:
    return f"/api/receipts/{receipt_number}"


async def build_receipt_context(db: AsyncIOMotorDatabase, enrollment: Enrollment) -> ReceiptContext:
    student = await db.users.find_one({"user_id": enrollment.student_id}) or {}
    course = await db.courses.find_one({"course_id": enrollment.course_id}) or {}
    price = float(course.get("price", 0) or 0)

    return ReceiptContext(
        receipt_number=enrollment.receipt.receipt_number,
        issued_at=enrollment.receipt.issued_at,
        student_name=student.get("full_name") or "N/A",
        student_email=student.get("email") or "N/A",
        course_title=course.get("title") or "N/A",
        course_price=price,
        amount=enrollment.amount if enrollment.amount is not None else price,
        payment_status=enrollment.payment_status,
        verified_at=enrollment.verified_at,
        currency=get_config().CURRENCY_CODE,
    )


async def issue_receipt(
    db: AsyncIOMotorDatabase,
    storage: ReceiptStorage,
    enrollment_id: str,
    issued_by: Optional[str] = None
) -> Receipt:
    """
    Issue the receipt for a PAID enrollment

    - Receipt metadata is reserved at most once per enrollment
    - The image is rendered and stored only while no file is attached,
      so a repeat call after success returns the existing receipt
    - Render/storage failures raise UpstreamFailureError; the reserved
      metadata and the PAID status stay, and the call can be retried

    Raises:
        NotFoundError: Enrollment missing
        InvalidArgumentError: Enrollment is not PAID
        UpstreamFailureError: Rendering or storage failed
    """
    try:
        enrollment = await get_enrollment(db, enrollment_id)
    except PyMongoError as exc:
        raise UpstreamFailureError(f"Enrollment lookup failed: {exc}") from exc
    if enrollment is None:
        raise NotFoundError("Enrollment not found")
    if enrollment.payment_status != PaymentStatus.PAID:
        raise InvalidArgumentError("Receipt can only be issued for a PAID enrollment")

    try:
        if enrollment.receipt is None:
            reserved = Receipt(
                receipt_number=generate_receipt_number(enrollment_id),
                issued_at=datetime.utcnow(),
                issued_by=issued_by,
            )
            if await reserve_receipt(db, enrollment_id, reserved):
                logger.info("Reserved receipt %s for enrollment %s", reserved.receipt_number, enrollment_id)
            enrollment = await get_enrollment(db, enrollment_id)

        receipt = enrollment.receipt
        if receipt.file_id:
            return receipt

        image = render_receipt_image(await build_receipt_context(db, enrollment))
        file_id = await storage.save(
            f"receipt_{enrollment_id}_{receipt.receipt_number}.png",
            image,
            {"enrollment_id": enrollment_id, "receipt_number": receipt.receipt_number}
        )
        url = receipt_url(receipt.receipt_number)
        attached = await attach_receipt_file(db, enrollment_id, file_id, url)
    except UPSTREAM_ERRORS as exc:
        logger.warning("Receipt generation failed for enrollment %s: %s", enrollment_id, exc)
        raise UpstreamFailureError(f"Receipt generation failed: {exc}") from exc

    if not attached:
        # A concurrent issuer attached its file first; keep theirs
        logger.info("Discarding duplicate receipt file %s for enrollment %s", file_id, enrollment_id)
        try:
            await storage.delete(file_id)
        except UPSTREAM_ERRORS as exc:
            logger.warning("Could not delete duplicate receipt file %s: %s", file_id, exc)
        try:
            return (await get_enrollment(db, enrollment_id)).receipt
        except PyMongoError as exc:
            raise UpstreamFailureError(f"Receipt lookup failed: {exc}") from exc

    logger.info("Issued receipt %s for enrollment %s", receipt.receipt_number, enrollment_id)
    return receipt.model_copy(update={"file_id": file_id, "url": url})


async def load_receipt_image(
    db: AsyncIOMotorDatabase,
    storage: ReceiptStorage,
    receipt_number: str
) -> Tuple[Enrollment, bytes]:
    enrollment = await get_enrollment_by_receipt(db, receipt_number)
    if enrollment is None or enrollment.receipt is None:
        raise NotFoundError("Receipt not found")
    if not enrollment.receipt.file_id:
        raise NotFoundError("Receipt image not generated yet")

    try:
        data = await storage.load(enrollment.receipt.file_id)
    except UPSTREAM_ERRORS as exc:
        raise UpstreamFailureError(f"Receipt storage unavailable: {exc}") from exc
    return enrollment, data
