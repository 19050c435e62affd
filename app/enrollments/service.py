"""
Payment Status Transitions
Validates admin status changes and runs their side effects

Policy:
- PENDING <-> LATER and PENDING/LATER -> PAID are allowed
- PAID is terminal; refunds are handled outside this workflow
- Re-requesting the current status is a no-op (audited as a warning)
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.audit import recorder
from app.audit.models import AuditAction, AuditStatus
from app.auth.session import SessionContext
from app.config import get_config
from app.enrollments.database import compare_and_set_status, get_enrollment
from app.enrollments.models import Enrollment, PaymentStatus, PaymentStatusResult, Receipt
from app.errors import (
    ConflictError, InvalidArgumentError, InvalidTransitionError, LMSError, NotFoundError,
    UpstreamFailureError
)
from app.finance.ledger import record_payment_transaction, split_amount
from app.receipts.service import generate_receipt_number, issue_receipt
from app.receipts.storage import ReceiptStorage

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.LATER, PaymentStatus.PAID},
    PaymentStatus.LATER: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
}

TRANSITION_ACTIONS = {
    PaymentStatus.PAID: AuditAction.PAYMENT_APPROVED,
    PaymentStatus.LATER: AuditAction.PAYMENT_MARKED_LATER,
    PaymentStatus.PENDING: AuditAction.PAYMENT_MARKED_PENDING,
}


def parse_payment_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise InvalidArgumentError(f"Invalid payment status '{value}'. Allowed: {allowed}")


def check_transition(current: PaymentStatus, requested: PaymentStatus) -> None:
    if current == requested:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot change payment status from {current.value} to {requested.value}"
        )


async def _apply_paid_side_effects(
    db: AsyncIOMotorDatabase,
    storage: ReceiptStorage,
    enrollment: Enrollment,
    actor: SessionContext,
    course: Optional[dict],
    warnings: List[str]
) -> bool:
    """Finance record and receipt; failures become warnings, never rollbacks"""
    if course is not None:
        try:
            await record_payment_transaction(db, enrollment, course, get_config().ADMIN_COMMISSION_PERCENT)
        except PyMongoError as exc:
            logger.error("Finance transaction failed for enrollment %s: %s", enrollment.enrollment_id, exc)
            warnings.append(f"Finance transaction not recorded: {exc}")
    else:
        warnings.append(f"Course {enrollment.course_id} not found; no finance transaction recorded")

    try:
        await issue_receipt(db, storage, enrollment.enrollment_id, issued_by=actor.user_id)
    except UpstreamFailureError as exc:
        warnings.append(f"{exc.message} (retryable)")
        return False
    return True


async def set_payment_status(
    db: AsyncIOMotorDatabase,
    storage: ReceiptStorage,
    enrollment_id: str,
    requested_status,
    actor: SessionContext,
    note: Optional[str] = None,
    request: Optional[Request] = None
) -> PaymentStatusResult:
    """
    Change an enrollment's payment status on behalf of an admin

    Every attempt is audited; failed attempts are recorded with
    status=error before the error is raised to the caller.

    Raises:
        InvalidArgumentError: requested_status is not PENDING, PAID or LATER
        NotFoundError: Enrollment missing
        InvalidTransitionError: Transition forbidden (e.g. out of PAID)
        ConflictError: Status changed concurrently
    """
    action = AuditAction.PAYMENT_STATUS_UPDATE.value
    warnings: List[str] = []

    try:
        requested = parse_payment_status(requested_status)
        action = TRANSITION_ACTIONS[requested].value

        enrollment = await get_enrollment(db, enrollment_id)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")

        current = PaymentStatus(enrollment.payment_status)
        check_transition(current, requested)

        if current == requested:
            receipt_issued = False
            if requested == PaymentStatus.PAID:
                # Repeat approval: make sure the one receipt exists, never a second
                receipt_issued = await _ensure_receipt(db, storage, enrollment, actor, warnings)
                enrollment = await _reload(db, enrollment)

            details = f"Enrollment {enrollment_id} already {requested.value}; no change"
            await recorder.record(
                db, actor.user_id, action, AuditStatus.WARNING,
                details=_with_warnings(details, warnings),
                target_type="enrollment", target_id=enrollment_id, request=request
            )
            return PaymentStatusResult(
                enrollment=enrollment, changed=False, receipt_issued=receipt_issued, warnings=warnings
            )

        now = datetime.utcnow()
        updates = {"payment_status": requested.value}
        course = None

        if requested == PaymentStatus.PAID:
            course = await db.courses.find_one({"course_id": enrollment.course_id})
            price = float(course.get("price", 0) or 0) if course else 0.0
            admin_amount, teacher_amount = split_amount(price, get_config().ADMIN_COMMISSION_PERCENT)
            updates.update({
                "verified_at": now,
                "verified_by": actor.user_id,
                "amount": price,
                "admin_amount": admin_amount,
                "teacher_amount": teacher_amount,
            })
            if enrollment.receipt is None:
                # Receipt metadata lands in the same write as PAID
                updates["receipt"] = Receipt(
                    receipt_number=generate_receipt_number(enrollment_id),
                    issued_at=now,
                    issued_by=actor.user_id,
                ).model_dump()

        if requested == PaymentStatus.LATER:
            updates["later_reason"] = note or "No reason provided"
        elif current == PaymentStatus.LATER:
            updates["later_reason"] = None

        updated = await compare_and_set_status(db, enrollment_id, current.value, updates)
        if updated is None:
            raise ConflictError(f"Enrollment {enrollment_id} was modified concurrently; reload and retry")

    except LMSError as exc:
        await recorder.record(
            db, actor.user_id, action, AuditStatus.ERROR,
            details=exc.message, target_type="enrollment", target_id=enrollment_id, request=request
        )
        raise

    logger.info(
        "Enrollment %s payment status %s -> %s by %s",
        enrollment_id, current.value, requested.value, actor.user_id
    )

    receipt_issued = False
    if requested == PaymentStatus.PAID:
        receipt_issued = await _apply_paid_side_effects(db, storage, updated, actor, course, warnings)
        updated = await _reload(db, updated)

    details = f"Payment status of enrollment {enrollment_id} changed {current.value} -> {requested.value}"
    if requested == PaymentStatus.PAID:
        details += f". Amount: {updated.amount:.2f} (Admin: {updated.admin_amount:.2f}, Teacher: {updated.teacher_amount:.2f})"
    if requested == PaymentStatus.LATER:
        details += f". Reason: {updated.later_reason}"

    await recorder.record(
        db, actor.user_id, action,
        AuditStatus.WARNING if warnings else AuditStatus.SUCCESS,
        details=_with_warnings(details, warnings),
        target_type="enrollment", target_id=enrollment_id, request=request
    )

    return PaymentStatusResult(
        enrollment=updated, changed=True, receipt_issued=receipt_issued, warnings=warnings
    )


async def _ensure_receipt(
    db: AsyncIOMotorDatabase,
    storage: ReceiptStorage,
    enrollment: Enrollment,
    actor: SessionContext,
    warnings: List[str]
) -> bool:
    if enrollment.receipt is not None and enrollment.receipt.file_id:
        return False
    try:
        await issue_receipt(db, storage, enrollment.enrollment_id, issued_by=actor.user_id)
    except UpstreamFailureError as exc:
        warnings.append(f"{exc.message} (retryable)")
        return False
    return True


async def _reload(db: AsyncIOMotorDatabase, enrollment: Enrollment) -> Enrollment:
    """Latest stored state; the last known copy if the store is unreachable"""
    try:
        return await get_enrollment(db, enrollment.enrollment_id) or enrollment
    except PyMongoError as exc:
        logger.warning("Could not reload enrollment %s: %s", enrollment.enrollment_id, exc)
        return enrollment


def _with_warnings(details: str, warnings: List[str]) -> str:
    if not warnings:
        return details
    return f"{details}. Warnings: {'; '.join(warnings)}"
