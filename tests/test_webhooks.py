"""Tests for the Vapi webhook endpoint."""

import pytest
from unittest.mock import patch, AsyncMock
from sqlalchemy import select

from conftest import complete_analysis, make_call
from triage_api.core.config import settings
from triage_api.models.call_analysis import CallAnalysis
from triage_api.schemas.vapi import VapiCall


def webhook(call: dict, **message) -> dict:
    return {"message": {"type": "status-update", "call": call, **message}}


@pytest.mark.asyncio
async def test_ended_with_analysis_is_processed_immediately(client, db, registry):
    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(
        make_call("call-a", "ended", analysis={
            "summary": "ok", "successEvaluation": True, "structuredData": {"patientId": "p1"},
        })
    ))
    assert resp.status_code == 200
    data = resp.json()
    assert data["action"] == "processed"
    assert data["result"]["success"] is True
    assert data["result"]["call_successful"] is True
    assert "call-a" not in registry

    row = (await db.execute(select(CallAnalysis).where(CallAnalysis.call_id == "call-a"))).scalar_one()
    assert row.patient_id == "p1"


@pytest.mark.asyncio
async def test_redelivered_final_event_persists_once(client, db):
    payload = webhook(make_call("call-dup", "ended", analysis=complete_analysis()))
    first = await client.post("/api/v1/webhooks/vapi", json=payload)
    second = await client.post("/api/v1/webhooks/vapi", json=payload)

    assert first.status_code == second.status_code == 200
    assert second.json()["result"]["duplicate"] is True
    rows = (await db.execute(select(CallAnalysis))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_in_progress_call_is_scheduled(client, registry, task_scheduler):
    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-b", "in-progress")))
    assert resp.status_code == 200
    assert resp.json()["scheduled"] is True

    record = registry.get("call-b")
    assert record.retry_count == 0
    assert record.initial_status == "in-progress"
    assert task_scheduler.history == [("call-b", 60_000)]


@pytest.mark.asyncio
async def test_duplicate_in_progress_events_schedule_once(client, registry, task_scheduler):
    await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-b", "in-progress")))
    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-b", "in-progress")))

    assert resp.json()["scheduled"] is False
    assert resp.json()["already_tracked"] is True
    assert len(registry) == 1
    assert task_scheduler.history == [("call-b", 60_000)]


@pytest.mark.asyncio
async def test_ended_without_analysis_schedules_analysis_retry(client, registry, fake_vapi, task_scheduler):
    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-c", "ended")))
    assert resp.status_code == 200
    assert resp.json()["retry_scheduled"] is True
    assert task_scheduler.due_at("call-c") == 30_000

    fake_vapi.queue("call-c", make_call("call-c", "ended"))
    await task_scheduler.advance(30_001)

    assert registry.get("call-c").retry_count == 1
    assert task_scheduler.due_at("call-c") == 60_000


@pytest.mark.asyncio
async def test_failed_call_is_discarded(client, registry, task_scheduler):
    await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-d", "ringing")))
    assert "call-d" in registry

    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(
        make_call("call-d", "failed", endedReason="pipeline-error")
    ))
    assert resp.status_code == 200
    assert resp.json()["status"] == "failed"
    assert resp.json()["action"] == "discarded"
    assert "call-d" not in registry
    assert task_scheduler.pending() == []


@pytest.mark.asyncio
async def test_end_of_call_report_analysis_beside_call(client, db):
    resp = await client.post("/api/v1/webhooks/vapi", json={
        "message": {
            "type": "end-of-call-report",
            "call": {"id": "call-e", "status": "ended", "metadata": {"patientId": "p7"}},
            "analysis": {"summary": "done", "successEvaluation": "Completed successfully"},
            "transcript": "AI: hello",
        }
    })
    assert resp.json()["action"] == "processed"

    row = (await db.execute(select(CallAnalysis).where(CallAnalysis.call_id == "call-e"))).scalar_one()
    assert row.patient_id == "p7"
    assert row.call_transcript == "AI: hello"
    assert row.success_evaluation is True


@pytest.mark.asyncio
async def test_missing_call_id_returns_400(client):
    resp = await client.post("/api/v1/webhooks/vapi", json={"message": {"type": "status-update"}})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing message.call.id in payload"

    resp = await client.post("/api/v1/webhooks/vapi", json=webhook({"status": "ended"}))
    assert resp.json()["detail"] == "Missing message.call.id in payload"


@pytest.mark.asyncio
async def test_malformed_fields_are_reported_by_location(client, registry):
    resp = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-m", "ended", duration="long")))
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid webhook payload at message.call.duration")

    resp = await client.post(
        "/api/v1/webhooks/vapi",
        json=webhook(make_call("call-m", "ended"), analysis="not an object"),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid webhook payload at message.analysis")
    assert "call-m" not in registry


@pytest.mark.asyncio
async def test_unexpected_error_returns_500(client, call_intake):
    with patch.object(call_intake, "handle_call", new_callable=AsyncMock, side_effect=RuntimeError("db down")):
        resp = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-f", "queued")))
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Internal server error processing webhook"


@pytest.mark.asyncio
async def test_webhook_secret_enforced_when_configured(client):
    with patch.object(settings, "VAPI_WEBHOOK_SECRET", "s3cret"):
        denied = await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-g", "queued")))
        allowed = await client.post(
            "/api/v1/webhooks/vapi",
            json=webhook(make_call("call-g", "queued")),
            headers={"x-vapi-secret": "s3cret"},
        )
    assert denied.status_code == 401
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_pending_calls_snapshot(client):
    await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-h", "queued")))
    await client.post("/api/v1/webhooks/vapi", json=webhook(make_call("call-i", "ended")))

    resp = await client.get("/api/v1/webhooks/vapi/pending")
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    by_id = {c["call_id"]: c for c in data["calls"]}
    assert by_id["call-h"]["initial_status"] == "queued"
    assert by_id["call-i"]["status"] == "ended"
    assert by_id["call-i"]["retry_count"] == 0


def test_call_schema_keeps_unknown_vapi_fields():
    call = VapiCall.model_validate({"id": "call-x", "endedAt": "2026-10-01T10:00:00Z", "phoneNumberId": "pn-1"})
    assert call.ended_at == "2026-10-01T10:00:00Z"
    assert call.model_extra == {"phoneNumberId": "pn-1"}
