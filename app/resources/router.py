"""
Learning Resources Router
Teachers and admins share files and links; any signed-in user can browse
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.audit import recorder
from app.audit.models import AuditAction, AuditStatus
from app.auth.session import SessionContext, get_current_staff, get_session
from app.dependencies import get_db
from app.errors import ForbiddenError, LMSError, NotFoundError
from app.resources.database import (
    create_resource, delete_resource, get_resource, list_resources, update_resource
)
from app.resources.models import Resource, ResourceCreate, ResourceUpdate

router = APIRouter(tags=["Resources"])


async def get_owned_resource(db: AsyncIOMotorDatabase, resource_id: str, session: SessionContext) -> Resource:
    """
    Resource the caller may modify: their own, or any for admins

    Raises:
        404: Resource not found
        403: Not the owner
    """
    resource = await get_resource(db, resource_id)
    if resource is None:
        raise NotFoundError("Resource not found")
    if not session.is_admin and resource.owner_id != session.user_id:
        raise ForbiddenError("Not authorized to modify this resource")
    return resource


@router.post("", status_code=201)
async def create_resource_endpoint(
    data: ResourceCreate,
    staff: SessionContext = Depends(get_current_staff),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    resource = await create_resource(db, data, owner_id=staff.user_id, owner_role=staff.role)
    return {
        "status": "success",
        "message": "Resource created successfully",
        "resource": resource.model_dump()
    }


@router.get("")
async def list_resources_endpoint(
    search: Optional[str] = None,
    resource_type: Optional[str] = None,
    owner_id: Optional[str] = None,
    course_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    session: SessionContext = Depends(get_session),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    resources, total = await list_resources(
        db, search=search, resource_type=resource_type, owner_id=owner_id,
        course_id=course_id, page=page, limit=limit
    )
    return {
        "status": "success",
        "resources": [r.model_dump() for r in resources],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total
        }
    }


@router.get("/{resource_id}")
async def get_resource_endpoint(
    resource_id: str,
    session: SessionContext = Depends(get_session),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    resource = await get_resource(db, resource_id)
    if resource is None:
        raise NotFoundError("Resource not found")
    return {"status": "success", "resource": resource.model_dump()}


@router.patch("/{resource_id}")
async def update_resource_endpoint(
    resource_id: str,
    data: ResourceUpdate,
    request: Request,
    staff: SessionContext = Depends(get_current_staff),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        resource = await get_owned_resource(db, resource_id, staff)
        updates = data.model_dump(exclude_unset=True, mode="json")
        updated = await update_resource(db, resource, updates)
    except LMSError as exc:
        await _record_admin_failure(db, staff, AuditAction.UPDATE_RESOURCE, resource_id, exc, request)
        raise

    if staff.is_admin:
        await recorder.record(
            db, staff.user_id, AuditAction.UPDATE_RESOURCE.value, AuditStatus.SUCCESS,
            details=f"Updated resource: {updated.title}",
            target_type="resource", target_id=resource_id, request=request
        )

    return {
        "status": "success",
        "message": "Resource updated successfully",
        "resource": updated.model_dump()
    }


@router.delete("/{resource_id}")
async def delete_resource_endpoint(
    resource_id: str,
    request: Request,
    staff: SessionContext = Depends(get_current_staff),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        resource = await get_owned_resource(db, resource_id, staff)
        await delete_resource(db, resource_id)
    except LMSError as exc:
        await _record_admin_failure(db, staff, AuditAction.DELETE_RESOURCE, resource_id, exc, request)
        raise

    if staff.is_admin:
        await recorder.record(
            db, staff.user_id, AuditAction.DELETE_RESOURCE.value, AuditStatus.SUCCESS,
            details=f"Deleted resource: {resource.title}",
            target_type="resource", target_id=resource_id, request=request
        )

    return {
        "status": "success",
        "message": "Resource deleted successfully"
    }


async def _record_admin_failure(
    db: AsyncIOMotorDatabase,
    staff: SessionContext,
    action: AuditAction,
    resource_id: str,
    exc: LMSError,
    request: Request
) -> None:
    if staff.is_admin:
        await recorder.record(
            db, staff.user_id, action.value, AuditStatus.ERROR,
            details=exc.message, target_type="resource", target_id=resource_id, request=request
        )
