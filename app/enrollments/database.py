import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.enrollments.models import (
    CourseSummary, Enrollment, EnrollmentSummary, PaymentStatus, Receipt, StudentSummary
)
from app.errors import ConflictError

# ==================== ENROLLMENT CRUD ====================

def generate_enrollment_id() -> str:
    return f"ENR_{secrets.token_hex(8).upper()}"


def to_enrollment(doc: Optional[dict]) -> Optional[Enrollment]:
    if doc is None:
        return None
    doc.pop("_id", None)
    return Enrollment(**doc)


async def create_enrollment(db: AsyncIOMotorDatabase, student_id: str, course_id: str) -> Enrollment:
    """
    Create enrollment in PENDING state
    One enrollment per (student, course)
    """
    existing = await db.enrollments.find_one({"student_id": student_id, "course_id": course_id})
    if existing:
        raise ConflictError("Already enrolled in this course")

    enrollment = Enrollment(
        enrollment_id=generate_enrollment_id(),
        student_id=student_id,
        course_id=course_id,
        payment_status=PaymentStatus.PENDING,
    )
    try:
        await db.enrollments.insert_one(enrollment.model_dump())
    except DuplicateKeyError:
        raise ConflictError("Already enrolled in this course")
    return enrollment


async def get_enrollment(db: AsyncIOMotorDatabase, enrollment_id: str) -> Optional[Enrollment]:
    doc = await db.enrollments.find_one({"enrollment_id": enrollment_id})
    return to_enrollment(doc)


async def get_enrollment_by_receipt(db: AsyncIOMotorDatabase, receipt_number: str) -> Optional[Enrollment]:
    doc = await db.enrollments.find_one({"receipt.receipt_number": receipt_number})
    return to_enrollment(doc)


async def list_enrollments(
    db: AsyncIOMotorDatabase,
    payment_status: Optional[str] = None,
    student_id: Optional[str] = None,
    course_id: Optional[str] = None,
    page: int = 1,
    limit: int = 50
) -> Tuple[List[Enrollment], int]:
    query = {}
    if payment_status:
        query["payment_status"] = payment_status
    if student_id:
        query["student_id"] = student_id
    if course_id:
        query["course_id"] = course_id

    skip = (page - 1) * limit
    docs = await db.enrollments.find(query) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(length=limit)
    total = await db.enrollments.count_documents(query)
    return [to_enrollment(d) for d in docs], total


async def count_by_payment_status(db: AsyncIOMotorDatabase) -> dict:
    pipeline = [{"$group": {"_id": "$payment_status", "count": {"$sum": 1}}}]
    results = await db.enrollments.aggregate(pipeline).to_list(None)
    counts = {status.value: 0 for status in PaymentStatus}
    for r in results:
        if r["_id"] in counts:
            counts[r["_id"]] = r["count"]
    counts["total"] = sum(counts.values())
    return counts


async def summarize(db: AsyncIOMotorDatabase, enrollment: Enrollment) -> EnrollmentSummary:
    """Attach student and course summary fields for the admin panel"""
    student = await db.users.find_one({"user_id": enrollment.student_id})
    course = await db.courses.find_one({"course_id": enrollment.course_id})

    return EnrollmentSummary(
        **enrollment.model_dump(),
        student=StudentSummary(
            user_id=enrollment.student_id,
            full_name=student.get("full_name") if student else None,
            email=student.get("email") if student else None,
        ),
        course=CourseSummary(
            course_id=enrollment.course_id,
            title=course.get("title") if course else None,
            price=course.get("price", 0) if course else 0,
        ),
    )

# ==================== STATE UPDATES ====================

async def compare_and_set_status(
    db: AsyncIOMotorDatabase,
    enrollment_id: str,
    expected_status: str,
    updates: dict
) -> Optional[Enrollment]:
    """
    Apply updates only while payment_status is still expected_status
    Returns None when another writer changed the status first
    """
    updates = dict(updates)
    updates["updated_at"] = datetime.utcnow()
    doc = await db.enrollments.find_one_and_update(
        {"enrollment_id": enrollment_id, "payment_status": expected_status},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )
    return to_enrollment(doc)


async def reserve_receipt(db: AsyncIOMotorDatabase, enrollment_id: str, receipt: Receipt) -> bool:
    """Set receipt metadata once; False if a receipt already exists"""
    result = await db.enrollments.update_one(
        {"enrollment_id": enrollment_id, "receipt": None},
        {"$set": {"receipt": receipt.model_dump(), "updated_at": datetime.utcnow()}}
    )
    return result.modified_count > 0


async def attach_receipt_file(db: AsyncIOMotorDatabase, enrollment_id: str, file_id: str, url: str) -> bool:
    """Attach the stored artifact once; False if another issuer got there first"""
    result = await db.enrollments.update_one(
        {"enrollment_id": enrollment_id, "receipt": {"$ne": None}, "receipt.file_id": None},
        {"$set": {
            "receipt.file_id": file_id,
            "receipt.url": url,
            "updated_at": datetime.utcnow()
        }}
    )
    return result.modified_count > 0


async def create_indexes(db: AsyncIOMotorDatabase):
    await db.enrollments.create_index([("enrollment_id", 1)], unique=True)
    await db.enrollments.create_index([("student_id", 1), ("course_id", 1)], unique=True)
    await db.enrollments.create_index([("payment_status", 1), ("created_at", -1)])
    await db.enrollments.create_index([("receipt.receipt_number", 1)], unique=True, sparse=True)
