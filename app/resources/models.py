from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum

# ==================== ENUMS ====================

class ResourceType(str, Enum):
    PDF = "pdf"
    VIDEO = "video"
    SLIDES = "slides"
    ASSIGNMENT = "assignment"
    NOTES = "notes"
    LINK = "link"
    OTHER = "other"

# ==================== DATABASE MODELS ====================

class Resource(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    resource_id: str  # RES_XXXXXXXXXXXXXXXX
    title: str
    description: str
    owner_id: str
    owner_role: str  # teacher, admin
    course_id: Optional[str] = None
    resource_type: ResourceType = ResourceType.OTHER
    tags: List[str] = []
    file_url: Optional[str] = None
    external_link: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

# ==================== REQUEST MODELS ====================

class ResourceCreate(BaseModel):
    title: str = Field(min_length=3, max_length=150)
    description: str = Field(min_length=10)
    course_id: Optional[str] = None
    resource_type: ResourceType = ResourceType.OTHER
    tags: List[str] = []
    file_url: Optional[str] = None
    external_link: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v):
        return v.strip()

    @field_validator("file_url", "external_link", "thumbnail_url")
    @classmethod
    def validate_url(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v

    @model_validator(mode="after")
    def require_attachment(self):
        if self.resource_type == ResourceType.LINK and not self.external_link:
            raise ValueError("Link resources require external_link")
        if not self.file_url and not self.external_link:
            raise ValueError("Either file_url or external_link is required")
        return self


class ResourceUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=150)
    description: Optional[str] = Field(None, min_length=10)
    course_id: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    tags: Optional[List[str]] = None
    file_url: Optional[str] = None
    external_link: Optional[str] = None
    thumbnail_url: Optional[str] = None

    # Omit a field to keep it; only the attachment fields may be cleared
    @field_validator("title", "description", "resource_type", "tags")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v):
        return v.strip()

    @field_validator("file_url", "external_link", "thumbnail_url")
    @classmethod
    def validate_url(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v
