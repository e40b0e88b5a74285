"""Call analysis model: one finalized post-call analysis per Vapi call."""

from sqlalchemy import Column, String, DateTime, Text, Boolean, Float, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
from datetime import datetime
from triage_api.core.database import Base


class CallAnalysis(Base):
    __tablename__ = "call_analysis"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(String, unique=True, index=True, nullable=False)  # Vapi call ID
    patient_id = Column(String, index=True, nullable=False)
    appointment_id = Column(String, index=True, nullable=True)
    call_summary = Column(Text, nullable=True)
    structured_data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    success_evaluation = Column(Boolean, nullable=False, default=False)  # keyword-derived flag
    success_rubric = Column(Text, nullable=True)  # raw vendor value
    call_transcript = Column(Text, nullable=True)
    call_duration = Column(Float, nullable=True)
    analysis_timestamp = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
