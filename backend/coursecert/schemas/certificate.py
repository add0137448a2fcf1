"""Models for certificate issuance, listing and revocation."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CertificateIssue(BaseModel):
    course_id: int
    template: str = "standard"


class CertificateRevoke(BaseModel):
    reason: str = Field(min_length=1)


class CertificateRead(BaseModel):
    id: int
    user_id: int
    course_id: int
    certificate_id: str
    verification_code: str
    status: str
    template: str
    is_valid: bool
    issued_at: datetime
    completion_date: datetime
    final_score: Optional[float] = None
    time_spent: float
    student_name: str
    course_name: str
    instructor_name: Optional[str] = None
    download_count: int
    revoked_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class CertificateBulkNotify(BaseModel):
    certificate_ids: List[int] = Field(min_length=1)
