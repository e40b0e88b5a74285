"""Tests for the in-memory pending call registry."""

from datetime import datetime

from triage_api.services.pending_calls import PendingCallRegistry


def test_upsert_if_absent_registers_once():
    registry = PendingCallRegistry()
    assert registry.upsert_if_absent("c1", {"id": "c1", "status": "queued"}, "queued") is True
    assert registry.upsert_if_absent("c1", {"id": "c1", "status": "ringing"}, "ringing") is False

    record = registry.get("c1")
    assert len(registry) == 1
    assert record.initial_status == "queued"
    assert record.status == "queued"
    assert record.retry_count == 0


def test_increment_retry_on_missing_record_returns_none():
    registry = PendingCallRegistry()
    assert registry.increment_retry("ghost") is None

    registry.upsert_if_absent("c1", {"id": "c1"}, "in-progress")
    assert registry.increment_retry("c1") == 1
    assert registry.increment_retry("c1") == 2


def test_remove_and_contains():
    registry = PendingCallRegistry()
    registry.upsert_if_absent("c1", {"id": "c1"}, "ended")
    assert "c1" in registry
    assert registry.remove("c1") is True
    assert "c1" not in registry
    assert registry.remove("c1") is False
    assert registry.get("c1") is None


def test_snapshot_uses_injected_clock_and_latest_status():
    fixed = datetime(2026, 10, 1, 12, 0, 0)
    registry = PendingCallRegistry(clock=lambda: fixed)
    registry.upsert_if_absent("c1", {"id": "c1", "status": "queued"}, "queued")
    registry.update_call_info("c1", {"id": "c1", "status": "in-progress"})
    registry.increment_retry("c1")

    assert registry.snapshot() == [{
        "call_id": "c1",
        "received_at": fixed,
        "retry_count": 1,
        "status": "in-progress",
        "initial_status": "queued",
    }]
