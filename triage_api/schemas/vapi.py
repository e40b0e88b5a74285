"""Pydantic schemas for Vapi webhook payloads and tool-call requests."""

from typing import Any
from pydantic import BaseModel, Field


class VapiAnalysis(BaseModel):
    """Post-call analysis block. Any field may lag behind the ended event."""
    summary: str | None = None
    success_evaluation: Any = Field(default=None, alias="successEvaluation")
    structured_data: Any = Field(default=None, alias="structuredData")

    class Config:
        extra = "allow"
        populate_by_name = True


class VapiCall(BaseModel):
    """Call snapshot as Vapi sends it (webhook) or returns it (GET /call/{id})."""
    id: str
    status: str | None = None
    ended_reason: str | None = Field(default=None, alias="endedReason")
    duration: float | None = None
    cost: float | None = None
    started_at: str | None = Field(default=None, alias="startedAt")
    ended_at: str | None = Field(default=None, alias="endedAt")
    analysis: VapiAnalysis | None = None
    transcript: str | None = None
    metadata: dict[str, Any] | None = None

    class Config:
        extra = "allow"
        populate_by_name = True


class VapiWebhookMessage(BaseModel):
    type: str | None = None
    call: VapiCall
    # end-of-call-report puts analysis next to the call rather than inside it
    analysis: VapiAnalysis | None = None

    class Config:
        extra = "allow"


class VapiWebhookPayload(BaseModel):
    message: VapiWebhookMessage


class VerifyIdentityRequest(BaseModel):
    name: str | None = None
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")

    class Config:
        populate_by_name = True


class AppointmentDetailsRequest(BaseModel):
    patient_id: str | None = Field(default=None, alias="patientId")

    class Config:
        populate_by_name = True
