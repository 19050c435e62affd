"""
Admin API Router
Enrollment payment verification, receipts, audit trail, finance and dashboard
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.audit import recorder
from app.audit.models import AuditAction, AuditStatus
from app.auth.session import SessionContext, get_current_admin, revoke_session
from app.dependencies import get_db, get_receipt_storage
from app.enrollments.database import (
    count_by_payment_status, get_enrollment, list_enrollments, summarize
)
from app.enrollments.models import PaymentStatusUpdate
from app.enrollments.service import parse_payment_status, set_payment_status
from app.errors import LMSError, NotFoundError
from app.finance.ledger import finance_summary, list_transactions
from app.receipts.service import issue_receipt
from app.receipts.storage import ReceiptStorage

router = APIRouter(tags=["Admin"])


# ============================================================================
# SESSION
# ============================================================================

@router.get("/me")
async def get_admin_info(admin: SessionContext = Depends(get_current_admin)):
    """
    Get current admin info
    """
    return {
        "status": "success",
        "admin": {
            "user_id": admin.user_id,
            "email": admin.email,
            "role": admin.role,
            "session_expires": admin.expires_at
        }
    }


@router.post("/logout")
async def admin_logout(
    request: Request,
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Revoke the current admin token
    """
    revoke_session(admin)
    await recorder.record(
        db_instance, admin.user_id, AuditAction.ADMIN_LOGOUT.value, AuditStatus.SUCCESS,
        details="Admin logged out", target_type="session", target_id=admin.token_id, request=request
    )
    return {
        "status": "success",
        "message": "Logged out successfully"
    }


# ============================================================================
# ENROLLMENT PAYMENT VERIFICATION
# ============================================================================

@router.get("/enrollments")
async def list_enrollments_admin(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    payment_status: Optional[str] = None,
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    List enrollments with student and course summary

    Filters:
    - payment_status: PENDING, PAID, LATER
    """
    status_filter = parse_payment_status(payment_status).value if payment_status else None
    enrollments, total = await list_enrollments(
        db_instance, payment_status=status_filter, page=page, limit=limit
    )

    return {
        "status": "success",
        "enrollments": [(await summarize(db_instance, e)).model_dump() for e in enrollments],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit)
        }
    }


@router.get("/enrollments/{enrollment_id}")
async def get_enrollment_admin(
    enrollment_id: str,
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    enrollment = await get_enrollment(db_instance, enrollment_id)
    if enrollment is None:
        raise NotFoundError("Enrollment not found")

    return {
        "status": "success",
        "enrollment": (await summarize(db_instance, enrollment)).model_dump()
    }


@router.patch("/enrollments/{enrollment_id}/payment-status")
async def update_payment_status(
    enrollment_id: str,
    data: PaymentStatusUpdate,
    request: Request,
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage)
):
    """
    Set payment status (PENDING / PAID / LATER)

    Moving to PAID records the finance split and issues the receipt once.
    Receipt failures come back as warnings; the status change stays.
    """
    result = await set_payment_status(
        db_instance, storage, enrollment_id, data.status, admin, note=data.note, request=request
    )

    return {
        "status": "success",
        "message": "Payment status updated" if result.changed else "Payment status unchanged",
        **result.model_dump()
    }


@router.post("/enrollments/{enrollment_id}/receipt")
async def retry_receipt(
    enrollment_id: str,
    request: Request,
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage)
):
    """
    Issue (or re-fetch) the receipt of a PAID enrollment
    Safe to call repeatedly; an existing receipt is returned as-is
    """
    try:
        receipt = await issue_receipt(db_instance, storage, enrollment_id, issued_by=admin.user_id)
    except LMSError as exc:
        await recorder.record(
            db_instance, admin.user_id, AuditAction.RECEIPT_ISSUED.value, AuditStatus.ERROR,
            details=exc.message, target_type="enrollment", target_id=enrollment_id, request=request
        )
        raise

    await recorder.record(
        db_instance, admin.user_id, AuditAction.RECEIPT_ISSUED.value, AuditStatus.SUCCESS,
        details=f"Receipt {receipt.receipt_number} available for enrollment {enrollment_id}",
        target_type="enrollment", target_id=enrollment_id, request=request
    )
    return {
        "status": "success",
        "receipt": receipt.model_dump()
    }


# ============================================================================
# AUDIT LOGS
# ============================================================================

@router.get("/audit-logs")
async def get_audit_logs(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Paginated audit trail

    Filters:
    - status: success, warning, error, all
    - search: case-insensitive match on action and details
    """
    result = await recorder.query_logs(db_instance, status=status, search=search, page=page, limit=limit)
    return {"status": "success", **result}


# ============================================================================
# FINANCE & DASHBOARD
# ============================================================================

@router.get("/finance/transactions")
async def get_finance_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    transactions, total = await list_transactions(db_instance, page=page, limit=limit)
    return {
        "status": "success",
        "transactions": transactions,
        "summary": await finance_summary(db_instance),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total
        }
    }


@router.get("/dashboard/stats")
async def dashboard_stats(
    admin: SessionContext = Depends(get_current_admin),
    db_instance: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Dashboard overview

    Returns:
    - Enrollment counts per payment status
    - Revenue split
    - Audit log outcome counts
    """
    return {
        "status": "success",
        "enrollments": await count_by_payment_status(db_instance),
        "finance": await finance_summary(db_instance),
        "audit": await recorder.count_by_status(db_instance, {})
    }
