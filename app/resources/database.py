import re
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.errors import InvalidArgumentError
from app.resources.models import Resource, ResourceCreate, ResourceType

# ==================== RESOURCE CRUD ====================

def to_resource(doc: Optional[dict]) -> Optional[Resource]:
    if doc is None:
        return None
    doc.pop("_id", None)
    return Resource(**doc)


async def create_resource(db: AsyncIOMotorDatabase, data: ResourceCreate, owner_id: str, owner_role: str) -> Resource:
    resource = Resource(
        resource_id=f"RES_{secrets.token_hex(8).upper()}",
        owner_id=owner_id,
        owner_role=owner_role,
        **data.model_dump()
    )
    await db.resources.insert_one(resource.model_dump())
    return resource


async def get_resource(db: AsyncIOMotorDatabase, resource_id: str) -> Optional[Resource]:
    return to_resource(await db.resources.find_one({"resource_id": resource_id}))


async def list_resources(
    db: AsyncIOMotorDatabase,
    search: Optional[str] = None,
    resource_type: Optional[str] = None,
    owner_id: Optional[str] = None,
    course_id: Optional[str] = None,
    page: int = 1,
    limit: int = 50
) -> Tuple[List[Resource], int]:
    query = {}

    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]

    if resource_type and resource_type != "all":
        query["resource_type"] = resource_type

    if owner_id:
        query["owner_id"] = owner_id

    if course_id:
        query["course_id"] = course_id

    skip = (page - 1) * limit
    docs = await db.resources.find(query) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(length=limit)
    total = await db.resources.count_documents(query)
    return [to_resource(d) for d in docs], total


async def update_resource(db: AsyncIOMotorDatabase, resource: Resource, updates: dict) -> Resource:
    """
    Partial update; the result must still carry a file or a link
    """
    merged = resource.model_copy(update=updates)
    if not merged.file_url and not merged.external_link:
        raise InvalidArgumentError("Either file_url or external_link is required")
    if merged.resource_type == ResourceType.LINK and not merged.external_link:
        raise InvalidArgumentError("Link resources require external_link")

    updates = dict(updates)
    updates["updated_at"] = datetime.utcnow()
    await db.resources.update_one({"resource_id": resource.resource_id}, {"$set": updates})
    return await get_resource(db, resource.resource_id)


async def delete_resource(db: AsyncIOMotorDatabase, resource_id: str) -> bool:
    result = await db.resources.delete_one({"resource_id": resource_id})
    return result.deleted_count > 0


async def create_indexes(db: AsyncIOMotorDatabase):
    await db.resources.create_index([("resource_id", 1)], unique=True)
    await db.resources.create_index([("owner_id", 1), ("created_at", -1)])
    await db.resources.create_index([("resource_type", 1)])
