"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from card_advisor.domain.models import JobHandle, ProcessingSession, SessionStats


class SessionCreatedResponse(BaseModel):
    """Response for POST /v1/sessions"""

    session_id: str
    token: str = Field(..., description="Opaque token; resolves the session like its id")
    status: str
    expires_at: datetime


class SessionStatusResponse(BaseModel):
    """Response for GET /v1/sessions/{session_id}"""

    session_id: str
    status: str
    progress: int
    retry_count: int
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_spend: float = 0.0
    top_category: Optional[str] = None
    total_transactions: int = 0
    categorized_count: int = 0
    unknown_mcc_count: int = 0
    new_mcc_discovered: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_session(cls, session: ProcessingSession) -> "SessionStatusResponse":
        return cls(
            session_id=session.id,
            status=session.status.value,
            progress=session.progress,
            retry_count=session.retry_count,
            expires_at=session.expires_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
            total_spend=session.total_spend,
            top_category=session.top_category,
            total_transactions=session.total_transactions,
            categorized_count=session.categorized_count,
            unknown_mcc_count=session.unknown_mcc_count,
            new_mcc_discovered=session.new_mcc_discovered,
            error_message=session.error_message,
        )


class ExtractionRequest(BaseModel):
    """Request body for POST /v1/sessions/{session_id}/extraction"""

    document_path: str = Field(..., min_length=1, description="Path of the stored statement file")
    expected_issuer: Optional[str] = None
    expected_transaction_count: Optional[int] = Field(None, ge=0)


class JobResponse(BaseModel):
    """Response for an accepted extraction job"""

    job_id: str
    session_id: str
    status: str
    queued_at: datetime

    @classmethod
    def from_handle(cls, handle: JobHandle) -> "JobResponse":
        return cls(job_id=handle.job_id, session_id=handle.session_id, status="queued", queued_at=handle.queued_at)


class DeletedResponse(BaseModel):
    session_id: str
    deleted: bool = True


class SessionStatsResponse(BaseModel):
    """Response for GET /v1/sessions/stats"""

    total: int
    active: int
    expired: int
    by_status: Dict[str, int]

    @classmethod
    def from_stats(cls, stats: SessionStats) -> "SessionStatsResponse":
        return cls(total=stats.total, active=stats.active, expired=stats.expired, by_status=stats.by_status)


class CleanupResponse(BaseModel):
    removed: int
