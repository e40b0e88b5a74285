"""Post-call business logic: what happens once a prescreening call is final.

Runs exactly once per finalized call, after the analysis has been saved
(or skipped). Failures here are logged and never raised: the outcome has
already been decided by the time this hook runs.
"""

import logging
import uuid
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from triage_api.models.appointment import Appointment

logger = logging.getLogger(__name__)

SUCCESS_ACTIONS = ["prescreening_completed"]
SUCCESS_NEXT_STEPS = ["confirm_appointment"]
FAILURE_ACTIONS = ["prescreening_failed"]
FAILURE_NEXT_STEPS = ["schedule_followup_call"]


class BusinessLogicHook:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory

    async def execute(
        self,
        call_id: str,
        call_successful: bool,
        reason: str | None = None,
        patient_id: str | None = None,
        appointment_id: str | None = None,
    ) -> dict:
        if call_successful:
            outcome = {
                "actions": list(SUCCESS_ACTIONS),
                "next_steps": list(SUCCESS_NEXT_STEPS),
            }
            logger.info(
                "Prescreening completed: call=%s patient=%s appointment=%s",
                call_id, patient_id, appointment_id,
            )
        else:
            outcome = {
                "actions": list(FAILURE_ACTIONS),
                "next_steps": list(FAILURE_NEXT_STEPS),
                "message": (
                    "Prescreening call was not successful"
                    + (f": {reason}" if reason else "")
                    + ". A follow-up call is needed before the appointment."
                ),
            }
            logger.warning(
                "Prescreening failed: call=%s patient=%s reason=%s",
                call_id, patient_id, reason,
            )

        if appointment_id:
            await self._update_appointment(appointment_id, "completed" if call_successful else "failed")

        return outcome

    async def _update_appointment(self, appointment_id: str, prescreening_status: str) -> None:
        if self.session_factory is None:
            return
        try:
            appointment_uuid = uuid.UUID(str(appointment_id))
        except ValueError:
            logger.warning("Skipping appointment update, not a UUID: %s", appointment_id)
            return

        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Appointment).where(Appointment.id == appointment_uuid))
                appointment = result.scalar_one_or_none()
                if not appointment:
                    logger.warning("Appointment %s not found for prescreening update", appointment_id)
                    return
                appointment.prescreening_status = prescreening_status
                await db.commit()
                logger.info("Appointment %s prescreening_status → %s", appointment_id, prescreening_status)
        except SQLAlchemyError as e:
            logger.error("Failed to update appointment %s: %s", appointment_id, e)
