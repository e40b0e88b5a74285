"""Endpoints called by the Vapi assistant (tool calls) and the patient dashboard."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from triage_api.core.database import get_db
from triage_api.core.deps import get_call_intake, require_api_key
from triage_api.schemas.call_analysis import CallAnalysisOut
from triage_api.schemas.vapi import AppointmentDetailsRequest, VerifyIdentityRequest
from triage_api.services.call_intake import CallIntake
from triage_api.services.patients import get_upcoming_appointment, verify_patient_identity

router = APIRouter(dependencies=[Depends(require_api_key)])
logger = logging.getLogger(__name__)


@router.post("/verifyIdentity")
async def verify_identity(body: VerifyIdentityRequest, db: AsyncSession = Depends(get_db)):
    """Match a caller to a patient profile by name and date of birth."""
    if not body.name or not body.date_of_birth:
        raise HTTPException(status_code=400, detail="Missing required fields: name and dateOfBirth")

    try:
        result = await verify_patient_identity(db, body.name, body.date_of_birth)
    except Exception as e:
        logger.error("/verifyIdentity error: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error during identity verification")

    if result["verified"]:
        return {
            "verified": True,
            "patientId": result["patient_id"],
            "patientName": result["patient_name"],
        }
    return {"verified": False, "error": result.get("error") or "Identity verification failed"}


@router.post("/getAppointmentDetails")
async def appointment_details(body: AppointmentDetailsRequest, db: AsyncSession = Depends(get_db)):
    """Next upcoming appointment for a verified patient."""
    if not body.patient_id:
        raise HTTPException(status_code=400, detail="Missing required field: patientId")

    try:
        result = await get_upcoming_appointment(db, body.patient_id)
    except Exception as e:
        logger.error("/getAppointmentDetails error: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error while fetching appointment details")

    if result.get("status") == "no_upcoming_appointments":
        return {
            "appointmentDate": None,
            "appointmentTime": None,
            "doctorName": None,
            "serviceType": None,
            "status": "no_upcoming_appointments",
            "message": "No upcoming appointments found",
        }
    if result.get("error"):
        return {"error": result["error"]}

    return {
        "appointmentDate": result["appointment_date"],
        "appointmentTime": result["appointment_time"],
        "doctorName": result["doctor_name"],
        "serviceType": result["service_type"],
        "status": result["status"],
        "reason": result["reason"],
    }


@router.get("/prescreening-status/{patient_id}")
async def prescreening_status(
    patient_id: str,
    appointment_id: Optional[str] = Query(default=None, alias="appointmentId"),
    intake: CallIntake = Depends(get_call_intake),
):
    """Outcome of the patient's latest prescreening call.

    successful / failed / emergency_declared come from the stored analysis;
    loading means a call for this patient is still being reconciled.
    """
    row = await intake.processor.store.latest_for_patient(patient_id, appointment_id)
    timestamp = datetime.utcnow().isoformat()

    if row is None:
        tracked = any(
            (record.call_info.get("metadata") or {}).get("patientId") == patient_id
            for record in intake.registry.records()
        )
        if tracked:
            return {
                "status": "loading",
                "message": "Your prescreening call is being analyzed",
                "patientId": patient_id,
                "timestamp": timestamp,
            }
        return {
            "status": "not_started",
            "message": "Prescreening not started",
            "patientId": patient_id,
            "timestamp": timestamp,
        }

    structured = row.structured_data if isinstance(row.structured_data, dict) else {}
    if structured.get("emergencyDeclared"):
        return {
            "status": "emergency_declared",
            "message": "An emergency was declared during your prescreening call. Please seek immediate care.",
            "reason": row.call_summary,
            "patientId": patient_id,
            "timestamp": timestamp,
        }
    if row.success_evaluation:
        return {
            "status": "successful",
            "message": "Prescreening completed successfully",
            "patientId": patient_id,
            "timestamp": timestamp,
        }
    return {
        "status": "failed",
        "message": "Prescreening was not completed successfully",
        "reason": row.success_rubric,
        "patientId": patient_id,
        "timestamp": timestamp,
    }


@router.get("/call-analysis/{call_id}", response_model=CallAnalysisOut)
async def get_call_analysis(call_id: str, intake: CallIntake = Depends(get_call_intake)):
    """Stored analysis for a Vapi call id."""
    row = await intake.processor.store.get(call_id)
    if not row:
        raise HTTPException(status_code=404, detail="Call analysis not found")
    return row


@router.get("/health")
async def vapi_health():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "vapi-triage-api",
    }
