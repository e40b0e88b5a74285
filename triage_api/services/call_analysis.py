"""Call analysis processing.

Turns a finished Vapi call into an AnalysisResult, saves it to the
call_analysis table (at most once per call id) and runs the post-call
business logic. Every failure in here is folded into the returned
outcome dict; nothing is raised back to the webhook route or the
retry loops.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from triage_api.models.call_analysis import CallAnalysis
from triage_api.schemas.call_analysis import AnalysisResult, SuccessEvaluation
from triage_api.services.business_logic import BusinessLogicHook
from triage_api.services.vapi_client import VapiClient, VapiClientError

logger = logging.getLogger(__name__)

INCOMPLETE_ANALYSIS_REASON = "Incomplete analysis data - missing required fields"

# Keyword heuristic over the free-text rubric. Any failure phrase wins over
# any success phrase; text with neither is a failure.
SUCCESS_INDICATORS = (
    "successful",
    "successfully",
    "completed successfully",
    "gathered the necessary information",
    "all required areas",
)
FAILURE_INDICATORS = (
    "unsuccessful",
    "not successful",
    "failed",
    "incomplete",
    "missing information",
    "unclear",
    "insufficient",
)


class MissingPatientIdError(ValueError):
    pass


def has_analysis(call: dict) -> bool:
    """True when the call carries a non-empty analysis block."""
    analysis = call.get("analysis")
    return isinstance(analysis, dict) and bool(analysis)


def extract_analysis(call: dict) -> AnalysisResult:
    """Normalize call["analysis"] into an AnalysisResult.

    A structuredData string that is not valid JSON is recorded in
    ``errors`` and left as None.
    """
    if not has_analysis(call):
        return AnalysisResult(has_analysis=False)

    analysis = call["analysis"]
    errors = []

    structured_data = analysis.get("structuredData")
    if isinstance(structured_data, str):
        try:
            structured_data = json.loads(structured_data)
        except ValueError as e:
            errors.append(f"Failed to parse structured data: {e}")
            structured_data = None

    success_evaluation = None
    if "successEvaluation" in analysis:
        raw = analysis["successEvaluation"]
        success_evaluation = SuccessEvaluation(is_successful=raw is True, value=raw)

    return AnalysisResult(
        has_analysis=True,
        summary=analysis.get("summary"),
        structured_data=structured_data,
        success_evaluation=success_evaluation,
        errors=tuple(errors),
    )


def parse_success_evaluation(value: Any) -> dict:
    """Derive a boolean outcome from Vapi's success evaluation.

    Booleans (PassFail rubric) are taken as-is. Strings go through the
    keyword heuristic above. Anything else counts as not successful.
    """
    if isinstance(value, bool):
        return {
            "is_successful": value,
            "reason": "Call completed successfully" if value else "Call evaluated as unsuccessful",
        }

    if not value or not isinstance(value, str):
        return {"is_successful": False, "reason": "No success evaluation provided"}

    text = value.lower()
    has_success = any(phrase in text for phrase in SUCCESS_INDICATORS)
    has_failure = any(phrase in text for phrase in FAILURE_INDICATORS)
    is_successful = has_success and not has_failure

    return {
        "is_successful": is_successful,
        "reason": "Call completed successfully" if is_successful else value,
    }


def _lookup_id(analysis: AnalysisResult, call: dict, key: str) -> str | None:
    structured = analysis.structured_data
    if isinstance(structured, dict) and structured.get(key):
        return str(structured[key])
    metadata = call.get("metadata") or {}
    if metadata.get(key):
        return str(metadata[key])
    return None


def extract_patient_id(analysis: AnalysisResult, call: dict) -> str | None:
    """Structured data first, then the metadata attached when the call was created."""
    return _lookup_id(analysis, call, "patientId")


def extract_appointment_id(analysis: AnalysisResult, call: dict) -> str | None:
    return _lookup_id(analysis, call, "appointmentId")


def _parse_timestamp(value: str | None) -> datetime:
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except ValueError:
            logger.warning("Unparseable endedAt %r, using current time", value)
    return datetime.utcnow()


def _rubric_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value)


def serialize_call_analysis(row: CallAnalysis) -> dict:
    return {
        "id": str(row.id),
        "call_id": row.call_id,
        "patient_id": row.patient_id,
        "appointment_id": row.appointment_id,
        "call_summary": row.call_summary,
        "structured_data": row.structured_data,
        "success_evaluation": row.success_evaluation,
        "success_rubric": row.success_rubric,
        "call_duration": row.call_duration,
        "analysis_timestamp": row.analysis_timestamp.isoformat() if row.analysis_timestamp else None,
    }


class CallAnalysisStore:
    """Persistence for finalized analyses.

    ``exists`` followed by ``insert`` is a best-effort duplicate guard; the
    unique index on call_id is what finally rejects a racing second insert.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def exists(self, call_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(CallAnalysis.id).where(CallAnalysis.call_id == call_id))
                return result.first() is not None
        except SQLAlchemyError as e:
            logger.error("Error checking call analysis existence for %s: %s", call_id, e)
            return False

    async def insert(self, record: dict) -> CallAnalysis:
        async with self.session_factory() as db:
            row = CallAnalysis(**record)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return row

    async def get(self, call_id: str) -> CallAnalysis | None:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(CallAnalysis).where(CallAnalysis.call_id == call_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Error retrieving call analysis %s: %s", call_id, e)
            return None

    async def latest_for_patient(self, patient_id: str, appointment_id: str | None = None) -> CallAnalysis | None:
        query = select(CallAnalysis).where(CallAnalysis.patient_id == patient_id)
        if appointment_id:
            query = query.where(CallAnalysis.appointment_id == appointment_id)
        query = query.order_by(CallAnalysis.created_at.desc()).limit(1)
        async with self.session_factory() as db:
            result = await db.execute(query)
            return result.scalar_one_or_none()


class AnalysisProcessor:
    """Finalizes a call that has (or should have) a complete analysis."""

    def __init__(
        self,
        store: CallAnalysisStore,
        business_logic: BusinessLogicHook,
        vapi: VapiClient | None = None,
    ):
        self.store = store
        self.business_logic = business_logic
        self.vapi = vapi

    async def process(self, call: dict) -> dict:
        call_id = call.get("id")
        analysis = extract_analysis(call)
        for error in analysis.errors:
            logger.warning("Call %s analysis: %s", call_id, error)

        logger.info(
            "Processing analysis for call %s: summary=%s success_evaluation=%s structured_data=%s",
            call_id,
            analysis.summary is not None,
            analysis.success_evaluation is not None,
            analysis.structured_data is not None,
        )

        if not (analysis.has_analysis and analysis.summary is not None and analysis.success_evaluation is not None):
            logger.warning("Call %s: %s", call_id, INCOMPLETE_ANALYSIS_REASON)
            business = await self.run_business_logic(call, analysis, False, INCOMPLETE_ANALYSIS_REASON)
            return {
                "success": False,
                "call_successful": False,
                "reason": INCOMPLETE_ANALYSIS_REASON,
                "failure_reason": INCOMPLETE_ANALYSIS_REASON,
                "analysis": analysis.model_dump(),
                "business_logic": business,
            }

        if await self.store.exists(call_id):
            logger.info("Call analysis already recorded for %s, skipping save", call_id)
            return {
                "success": True,
                "call_successful": True,
                "duplicate": True,
                "reason": "Call analysis already recorded",
                "analysis": analysis.model_dump(),
            }

        saved = await self.save(call, analysis)
        business = await self.run_business_logic(call, analysis, saved["call_successful"], saved["reason"])
        return {**saved, "analysis": analysis.model_dump(), "business_logic": business}

    async def save(self, call: dict, analysis: AnalysisResult) -> dict:
        call_id = call.get("id")
        try:
            evaluation = parse_success_evaluation(analysis.success_evaluation.value)
            patient_id = extract_patient_id(analysis, call)
            appointment_id = extract_appointment_id(analysis, call)
            if not patient_id:
                raise MissingPatientIdError("Patient ID is required but not found in call data")

            row = await self.store.insert({
                "call_id": call_id,
                "patient_id": patient_id,
                "appointment_id": appointment_id,
                "call_summary": analysis.summary,
                "structured_data": analysis.structured_data,
                "success_evaluation": evaluation["is_successful"],
                "success_rubric": _rubric_text(analysis.success_evaluation.value),
                "call_transcript": call.get("transcript"),
                "call_duration": call.get("duration"),
                "analysis_timestamp": _parse_timestamp(call.get("endedAt")),
            })
        except MissingPatientIdError as e:
            logger.error("Cannot save analysis for call %s: %s", call_id, e)
            return {
                "success": False,
                "error": str(e),
                "call_successful": False,
                "reason": "Patient ID missing",
            }
        except Exception as e:
            logger.error("Error saving call analysis for %s: %s", call_id, e)
            return {
                "success": False,
                "error": str(e),
                "call_successful": False,
                "reason": "Database error occurred",
            }

        logger.info("Call analysis saved: %s → id=%s successful=%s", call_id, row.id, evaluation["is_successful"])
        await self._patch_back(call, evaluation["is_successful"], str(row.id))
        return {
            "success": True,
            "data": serialize_call_analysis(row),
            "call_successful": evaluation["is_successful"],
            "reason": evaluation["reason"],
        }

    async def run_business_logic(
        self,
        call: dict,
        analysis: AnalysisResult,
        call_successful: bool,
        reason: str | None,
    ) -> dict:
        return await self.business_logic.execute(
            call_id=call.get("id"),
            call_successful=call_successful,
            reason=reason,
            patient_id=extract_patient_id(analysis, call),
            appointment_id=extract_appointment_id(analysis, call),
        )

    async def _patch_back(self, call: dict, call_successful: bool, analysis_id: str) -> None:
        """Write the outcome into the call's Vapi metadata. Best effort."""
        if self.vapi is None or not self.vapi.api_key:
            return
        metadata = dict(call.get("metadata") or {})
        metadata.update({
            "prescreeningStatus": "successful" if call_successful else "failed",
            "callAnalysisId": analysis_id,
        })
        try:
            await self.vapi.update_call(call["id"], {"metadata": metadata})
        except VapiClientError as e:
            logger.warning("Metadata patch-back failed for call %s: %s", call["id"], e)
