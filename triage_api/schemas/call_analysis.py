"""Schemas for processed call analysis and the pending-call diagnostics."""

from datetime import datetime
from typing import Any
from uuid import UUID
from pydantic import BaseModel


class SuccessEvaluation(BaseModel):
    is_successful: bool
    value: Any = None

    class Config:
        frozen = True


class AnalysisResult(BaseModel):
    """Normalized view of a Vapi analysis block.

    Built once per finalized call and never mutated. Structured-data parse
    failures are recorded in ``errors`` instead of being raised.
    """
    has_analysis: bool = False
    summary: str | None = None
    structured_data: Any = None
    success_evaluation: SuccessEvaluation | None = None
    errors: tuple[str, ...] = ()

    class Config:
        frozen = True


class CallAnalysisOut(BaseModel):
    """Response schema for stored call analysis rows."""
    id: UUID
    call_id: str
    patient_id: str
    appointment_id: str | None = None
    call_summary: str | None = None
    structured_data: Any = None
    success_evaluation: bool
    success_rubric: str | None = None
    call_transcript: str | None = None
    call_duration: float | None = None
    analysis_timestamp: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class PendingCallOut(BaseModel):
    call_id: str
    received_at: datetime
    retry_count: int
    status: str | None = None
    initial_status: str | None = None


class PendingCallsSnapshot(BaseModel):
    count: int
    calls: list[PendingCallOut]
