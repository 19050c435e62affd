import logging
import math
import re
import secrets
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.audit.models import AuditLogEntry, AuditStatus
from app.errors import InvalidArgumentError

logger = logging.getLogger(__name__)


def generate_log_id() -> str:
    return f"AUD_{secrets.token_hex(8).upper()}"


async def record(
    db: AsyncIOMotorDatabase,
    actor_id: str,
    action: str,
    status: AuditStatus = AuditStatus.SUCCESS,
    details: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    request: Optional[Request] = None
) -> Optional[AuditLogEntry]:
    """
    Append an audit entry for an administrative action attempt

    Storage failures are logged and reported as None; they never
    propagate into (or roll back) the action being audited.

    Args:
        actor_id: Admin (or teacher) performing the action
        action: Action name, e.g. PAYMENT_APPROVED
        status: success, warning or error
        details: Human readable outcome
        target_type: Resource type (e.g. 'enrollment', 'resource')
        target_id: ID of the resource
        request: Incoming request, for ip address and user agent
    """
    entry = AuditLogEntry(
        log_id=generate_log_id(),
        actor_id=actor_id,
        action=action,
        status=AuditStatus(status),
        details=details,
        target_type=target_type,
        target_id=target_id,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )

    try:
        await db.audit_logs.insert_one(entry.model_dump())
    except PyMongoError:
        logger.exception("Failed to write audit log action=%s actor=%s target=%s", action, actor_id, target_id)
        return None

    return entry


def build_log_query(status: Optional[str] = None, search: Optional[str] = None) -> dict:
    query = {}

    if status and status != "all":
        try:
            query["status"] = AuditStatus(status).value
        except ValueError:
            raise InvalidArgumentError(f"Invalid audit status: {status}")

    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"action": pattern}, {"details": pattern}]

    return query


async def count_by_status(db: AsyncIOMotorDatabase, query: dict) -> dict:
    """Aggregate counts over the filtered set, so total always equals the sum"""
    pipeline = [
        {"$match": query},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}}
    ]
    results = await db.audit_logs.aggregate(pipeline).to_list(None)
    counts = {r["_id"]: r["count"] for r in results}

    success = counts.get(AuditStatus.SUCCESS.value, 0)
    warnings = counts.get(AuditStatus.WARNING.value, 0)
    errors = counts.get(AuditStatus.ERROR.value, 0)
    return {
        "total": success + warnings + errors,
        "success": success,
        "warnings": warnings,
        "errors": errors
    }


async def query_logs(
    db: AsyncIOMotorDatabase,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50
) -> dict:
    """
    Filtered, paginated audit trail, newest first, with stats for the same filter
    """
    query = build_log_query(status, search)

    skip = (page - 1) * limit
    logs = await db.audit_logs.find(query, {"_id": 0}) \
        .sort([("timestamp", -1), ("log_id", -1)]) \
        .skip(skip) \
        .limit(limit) \
        .to_list(length=limit)

    stats = await count_by_status(db, query)
    total = stats["total"]

    return {
        "logs": logs,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0
        },
        "stats": stats
    }
