from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class AuditStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AuditAction(str, Enum):
    PAYMENT_APPROVED = "PAYMENT_APPROVED"
    PAYMENT_MARKED_LATER = "PAYMENT_MARKED_LATER"
    PAYMENT_MARKED_PENDING = "PAYMENT_MARKED_PENDING"
    PAYMENT_STATUS_UPDATE = "PAYMENT_STATUS_UPDATE"
    RECEIPT_ISSUED = "RECEIPT_ISSUED"
    UPDATE_RESOURCE = "UPDATE_RESOURCE"
    DELETE_RESOURCE = "DELETE_RESOURCE"
    ADMIN_LOGOUT = "ADMIN_LOGOUT"


class AuditLogEntry(BaseModel):
    """
    Immutable record of one administrative action attempt
    """
    model_config = ConfigDict(use_enum_values=True)

    log_id: str  # AUD_XXXXXXXXXXXXXXXX
    actor_id: str
    action: str
    status: AuditStatus = AuditStatus.SUCCESS
    details: Optional[str] = None
    target_type: Optional[str] = None  # enrollment, resource, session
    target_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
