"""
Finance Ledger
Records the platform/teacher split of every approved course payment
"""

import logging
import secrets
from datetime import datetime
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict, Field
from pymongo.errors import DuplicateKeyError
from enum import Enum

from app.enrollments.models import Enrollment

logger = logging.getLogger(__name__)


class TransactionType(str, Enum):
    PAYMENT = "PAYMENT"


class TransactionStatus(str, Enum):
    COMPLETED = "COMPLETED"


class FinanceTransaction(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    transaction_id: str  # TXN_XXXXXXXXXXXXXXXX
    type: TransactionType = TransactionType.PAYMENT
    enrollment_id: str
    course_id: str
    teacher_id: Optional[str] = None
    student_id: str
    gross_amount: float
    admin_percentage: int
    admin_amount: float
    teacher_amount: float
    status: TransactionStatus = TransactionStatus.COMPLETED
    payment_method: str = "ONLINE"
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


def split_amount(price: float, admin_percentage: int) -> Tuple[float, float]:
    """
    Split a payment into (admin, teacher) shares rounded to 2 decimals
    The teacher share absorbs rounding so both always add up to the price
    """
    price = round(float(price or 0), 2)
    admin_amount = round(price * admin_percentage / 100, 2)
    teacher_amount = round(price - admin_amount, 2)
    return admin_amount, teacher_amount


async def record_payment_transaction(
    db: AsyncIOMotorDatabase,
    enrollment: Enrollment,
    course: dict,
    admin_percentage: int
) -> Optional[FinanceTransaction]:
    """
    Record the PAYMENT transaction for a newly PAID enrollment
    Only one per enrollment; repeats return None
    """
    gross = float(course.get("price", 0) or 0)
    admin_amount, teacher_amount = split_amount(gross, admin_percentage)

    transaction = FinanceTransaction(
        transaction_id=f"TXN_{secrets.token_hex(8).upper()}",
        enrollment_id=enrollment.enrollment_id,
        course_id=enrollment.course_id,
        teacher_id=course.get("instructor_id"),
        student_id=enrollment.student_id,
        gross_amount=gross,
        admin_percentage=admin_percentage,
        admin_amount=admin_amount,
        teacher_amount=teacher_amount,
        description=f"Course payment for {course.get('title', enrollment.course_id)}",
    )

    existing = await db.finance_transactions.find_one({"enrollment_id": enrollment.enrollment_id})
    if existing:
        return None

    try:
        await db.finance_transactions.insert_one(transaction.model_dump())
    except DuplicateKeyError:
        return None

    logger.info(
        "Recorded payment transaction %s enrollment=%s gross=%.2f admin=%.2f teacher=%.2f",
        transaction.transaction_id, enrollment.enrollment_id, gross, admin_amount, teacher_amount
    )
    return transaction


async def list_transactions(db: AsyncIOMotorDatabase, page: int = 1, limit: int = 50) -> Tuple[list, int]:
    skip = (page - 1) * limit
    transactions = await db.finance_transactions.find({}, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(length=limit)
    total = await db.finance_transactions.count_documents({})
    return transactions, total


async def finance_summary(db: AsyncIOMotorDatabase) -> dict:
    pipeline = [
        {"$match": {"status": TransactionStatus.COMPLETED.value, "type": TransactionType.PAYMENT.value}},
        {"$group": {
            "_id": None,
            "gross": {"$sum": "$gross_amount"},
            "admin": {"$sum": "$admin_amount"},
            "teacher": {"$sum": "$teacher_amount"},
            "count": {"$sum": 1}
        }}
    ]
    results = await db.finance_transactions.aggregate(pipeline).to_list(None)
    if not results:
        return {"total_revenue": 0.0, "admin_revenue": 0.0, "teacher_payouts": 0.0, "transactions": 0}

    r = results[0]
    return {
        "total_revenue": round(r["gross"], 2),
        "admin_revenue": round(r["admin"], 2),
        "teacher_payouts": round(r["teacher"], 2),
        "transactions": r["count"]
    }


async def create_indexes(db: AsyncIOMotorDatabase):
    await db.finance_transactions.create_index([("enrollment_id", 1)], unique=True)
    await db.finance_transactions.create_index([("teacher_id", 1), ("created_at", -1)])
