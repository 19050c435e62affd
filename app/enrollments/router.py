from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.session import SessionContext, get_session
from app.dependencies import get_db
from app.enrollments.database import create_enrollment, list_enrollments, summarize
from app.errors import ForbiddenError, NotFoundError

router = APIRouter(tags=["Enrollments"])


@router.post("/{course_id}", status_code=201)
async def enroll_in_course(
    course_id: str,
    session: SessionContext = Depends(get_session),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Enroll the current student; payment starts as PENDING
    """
    if session.role != "student":
        raise ForbiddenError("Only students can enroll in courses")

    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise NotFoundError("Course not found")

    enrollment = await create_enrollment(db, session.user_id, course_id)
    return {
        "status": "success",
        "message": "Enrollment created successfully",
        "enrollment": enrollment.model_dump()
    }


@router.get("/me")
async def get_my_enrollments(
    session: SessionContext = Depends(get_session),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    enrollments, total = await list_enrollments(db, student_id=session.user_id, limit=500)
    return {
        "status": "success",
        "enrollments": [(await summarize(db, e)).model_dump() for e in enrollments],
        "total": total
    }
