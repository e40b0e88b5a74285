"""Patient lookups backing the Vapi assistant's tool calls.

verify_patient_identity: name + date of birth → patient id
get_upcoming_appointment: patient id → next upcoming appointment
"""

import logging
import uuid
from datetime import date

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from triage_api.models.appointment import Appointment
from triage_api.models.profile import Profile

logger = logging.getLogger(__name__)


class _IdentityInput(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    date_of_birth: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")


async def verify_patient_identity(db: AsyncSession, name: str, date_of_birth: str) -> dict:
    """Exact match on profile name and date of birth.

    A matching profile only counts as verified if the patient has at
    least one appointment on record.
    """
    logger.info("Verifying patient identity (name length %d)", len(name))
    try:
        checked = _IdentityInput(name=name.strip(), date_of_birth=date_of_birth.strip())
        dob = date.fromisoformat(checked.date_of_birth)
    except (ValidationError, ValueError) as e:
        logger.info("Identity input rejected: %s", str(e).splitlines()[0])
        return {"verified": False, "error": "Invalid input format"}

    result = await db.execute(
        select(Profile).where(Profile.name == checked.name, Profile.date_of_birth == dob)
    )
    profile = result.scalars().first()
    if not profile:
        logger.info("No matching profile found")
        return {"verified": False}

    result = await db.execute(
        select(Appointment.id).where(Appointment.patient_id == profile.id).limit(1)
    )
    if result.first() is None:
        logger.info("Patient %s found but has no appointments", profile.id)
        return {"verified": False, "error": "No appointment history found"}

    logger.info("Verified patient %s", profile.id)
    return {"verified": True, "patient_id": str(profile.id), "patient_name": profile.name}


async def get_upcoming_appointment(db: AsyncSession, patient_id: str) -> dict:
    """Nearest appointment with status 'upcoming' dated today or later."""
    try:
        patient_uuid = uuid.UUID(str(patient_id))
    except ValueError:
        logger.info("Invalid patient id format: %s", patient_id)
        return {"error": "Invalid patient ID format"}

    result = await db.execute(
        select(Appointment)
        .where(
            Appointment.patient_id == patient_uuid,
            Appointment.status == "upcoming",
            Appointment.appointment_date >= date.today(),
        )
        .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
        .limit(1)
    )
    appointment = result.scalar_one_or_none()

    if not appointment:
        logger.info("No upcoming appointments for patient %s", patient_id)
        return {
            "error": "No upcoming appointments found",
            "appointment_date": None,
            "appointment_time": None,
            "doctor_name": None,
            "service_type": None,
            "status": "no_upcoming_appointments",
        }

    logger.info("Found appointment on %s for patient %s", appointment.appointment_date, patient_id)
    return {
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time.strftime("%H:%M"),
        "doctor_name": appointment.doctor_name or "TBD",
        "service_type": appointment.service_name or appointment.service_type,
        "status": appointment.status,
        "reason": appointment.reason,
    }
