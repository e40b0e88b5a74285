"""Vapi webhook handler.

Thin HTTP layer, the reconciliation logic lives in triage_api.services.call_intake.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from triage_api.core.deps import get_call_intake, verify_webhook_secret
from triage_api.schemas.call_analysis import PendingCallsSnapshot
from triage_api.schemas.vapi import VapiWebhookPayload
from triage_api.services.call_analysis import has_analysis
from triage_api.services.call_intake import CallIntake

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/vapi", dependencies=[Depends(verify_webhook_secret)])
async def vapi_webhook(request: Request, intake: CallIntake = Depends(get_call_intake)):
    """Receive call lifecycle events from Vapi (status-update, end-of-call-report, ...)."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        webhook = VapiWebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))

    try:
        message = payload["message"]
        call = dict(message["call"])
        # end-of-call-report carries analysis/transcript beside the call object
        if not has_analysis(call) and isinstance(message.get("analysis"), dict) and message["analysis"]:
            call["analysis"] = message["analysis"]
        if not call.get("transcript") and message.get("transcript"):
            call["transcript"] = message["transcript"]

        logger.info(
            "Vapi event: %s | call_id=%s status=%s",
            webhook.message.type, webhook.message.call.id, webhook.message.call.status,
        )
        return await intake.handle_call(call)

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Webhook error: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error processing webhook")


def _validation_detail(error: ValidationError) -> str:
    """First payload problem as a readable 400 detail."""
    problems = error.errors()
    for problem in problems:
        location = ".".join(str(part) for part in problem["loc"])
        if problem["type"] == "missing" and location in ("message", "message.call", "message.call.id"):
            return "Missing message.call.id in payload"
    first = problems[0]
    location = ".".join(str(part) for part in first["loc"]) or "body"
    return f"Invalid webhook payload at {location}: {first['msg']}"


@router.get("/vapi/pending", response_model=PendingCallsSnapshot)
async def list_pending_calls(intake: CallIntake = Depends(get_call_intake)):
    """Calls still waiting on completion or analysis (diagnostics only)."""
    calls = intake.registry.snapshot()
    return {"count": len(calls), "calls": calls}
