from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

# ==================== ENUMS ====================

class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    LATER = "LATER"

# ==================== DATABASE MODELS ====================

class Receipt(BaseModel):
    """
    Proof of payment, created at most once per enrollment
    file_id stays None until the rendered image is stored
    """
    receipt_number: str  # REC-<epoch ms>-<suffix>
    issued_at: datetime = Field(default_factory=datetime.utcnow)
    issued_by: Optional[str] = None
    file_id: Optional[str] = None
    url: Optional[str] = None


class Enrollment(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    enrollment_id: str  # ENR_XXXXXXXXXXXXXXXX
    student_id: str
    course_id: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    receipt: Optional[Receipt] = None
    amount: Optional[float] = None
    admin_amount: Optional[float] = None
    teacher_amount: Optional[float] = None
    later_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

# ==================== REQUEST / RESPONSE MODELS ====================

class PaymentStatusUpdate(BaseModel):
    # Plain string so unknown values reach the service and get audited
    status: str
    note: Optional[str] = None


class StudentSummary(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None


class CourseSummary(BaseModel):
    course_id: str
    title: Optional[str] = None
    price: float = 0.0


class EnrollmentSummary(Enrollment):
    student: Optional[StudentSummary] = None
    course: Optional[CourseSummary] = None


class PaymentStatusResult(BaseModel):
    enrollment: Enrollment
    changed: bool
    receipt_issued: bool = False
    warnings: List[str] = []
