"""Patient appointment model (read by the Vapi tool endpoints)."""

from sqlalchemy import Column, String, DateTime, Date, Time, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from triage_api.core.database import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    doctor_name = Column(String, nullable=True)
    service_type = Column(String, nullable=True)
    service_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="upcoming", index=True)  # upcoming, completed, cancelled
    reason = Column(Text, nullable=True)
    prescreening_status = Column(String, nullable=True)  # completed, failed

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
