"""Vapi call intake.

Handles the core logic behind the Vapi webhook: classify each call
snapshot and either finalize it now, park it in the pending registry with
a retry wake, or drop it. Never waits on a retry loop.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from triage_api.services.business_logic import BusinessLogicHook
from triage_api.services.call_analysis import AnalysisProcessor, CallAnalysisStore
from triage_api.services.call_scheduler import (
    AsyncioTaskScheduler,
    CallRetryScheduler,
    RetryPolicy,
    TaskScheduler,
)
from triage_api.services.call_status import AWAIT_ANALYSIS, AWAIT_COMPLETION, PROCESS, classify_call
from triage_api.services.pending_calls import PendingCallRegistry
from triage_api.services.vapi_client import VapiClient

logger = logging.getLogger(__name__)


class CallIntake:

    def __init__(
        self,
        registry: PendingCallRegistry,
        scheduler: CallRetryScheduler,
        processor: AnalysisProcessor,
    ):
        self.registry = registry
        self.scheduler = scheduler
        self.processor = processor

    async def handle_call(self, call: dict) -> dict:
        call_id = call["id"]
        status = call.get("status")
        action = classify_call(call)
        logger.info("Vapi call %s: status=%s → %s", call_id, status, action)

        if action == PROCESS:
            result = await self.processor.process(call)
            self.scheduler.resolve(call_id)
            return {"status": "ok", "call_id": call_id, "action": "processed", "result": result}

        if action == AWAIT_COMPLETION:
            if not self.registry.upsert_if_absent(call_id, call, status):
                return {
                    "status": "ok",
                    "call_id": call_id,
                    "action": "awaiting_completion",
                    "scheduled": False,
                    "already_tracked": True,
                }
            self.scheduler.schedule_completion_check(call_id)
            return {"status": "ok", "call_id": call_id, "action": "awaiting_completion", "scheduled": True}

        if action == AWAIT_ANALYSIS:
            if not self.registry.upsert_if_absent(call_id, call, status):
                return {
                    "status": "ok",
                    "call_id": call_id,
                    "action": "awaiting_analysis",
                    "retry_scheduled": False,
                    "already_tracked": True,
                }
            self.scheduler.schedule_analysis_retry(call_id)
            return {"status": "ok", "call_id": call_id, "action": "awaiting_analysis", "retry_scheduled": True}

        self.scheduler.resolve(call_id)
        logger.info("Vapi call %s discarded (status=%s, reason=%s)", call_id, status, call.get("endedReason"))
        return {"status": status, "call_id": call_id, "action": "discarded"}


def build_call_intake(
    session_factory: async_sessionmaker[AsyncSession],
    vapi: VapiClient,
    registry: PendingCallRegistry,
    task_scheduler: TaskScheduler | None = None,
    policy: RetryPolicy | None = None,
) -> CallIntake:
    """Wire registry, Vapi client, persistence and retry loops together."""
    processor = AnalysisProcessor(
        store=CallAnalysisStore(session_factory),
        business_logic=BusinessLogicHook(session_factory),
        vapi=vapi,
    )
    scheduler = CallRetryScheduler(
        registry=registry,
        vapi=vapi,
        processor=processor,
        task_scheduler=task_scheduler or AsyncioTaskScheduler(),
        policy=policy,
    )
    return CallIntake(registry=registry, scheduler=scheduler, processor=processor)
