"""FastAPI dependencies: shared-secret checks and the call intake wiring."""

import hmac
from typing import Optional
from fastapi import Header, HTTPException, status

from triage_api.core.config import settings
from triage_api.core.database import async_session
from triage_api.services.call_intake import CallIntake, build_call_intake
from triage_api.services.pending_calls import pending_calls
from triage_api.services.vapi_client import vapi_client

_call_intake: CallIntake | None = None


def get_call_intake() -> CallIntake:
    """Process-wide CallIntake, built on first use."""
    global _call_intake
    if _call_intake is None:
        _call_intake = build_call_intake(
            session_factory=async_session,
            vapi=vapi_client,
            registry=pending_calls,
        )
    return _call_intake


async def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    """Guard Vapi tool endpoints with the x-api-key header.

    Disabled when VAPI_API_KEY is not configured.
    """
    if not settings.VAPI_API_KEY:
        return
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key: x-api-key header is required",
        )
    if not hmac.compare_digest(x_api_key, settings.VAPI_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )


async def verify_webhook_secret(x_vapi_secret: Optional[str] = Header(default=None)) -> None:
    """Check the x-vapi-secret header Vapi attaches to server messages."""
    if not settings.VAPI_WEBHOOK_SECRET:
        return
    if not x_vapi_secret or not hmac.compare_digest(x_vapi_secret, settings.VAPI_WEBHOOK_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )
