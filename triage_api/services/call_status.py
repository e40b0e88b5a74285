"""Vapi call status classification shared by the webhook route and the retry loops."""

from triage_api.services.call_analysis import has_analysis

NON_TERMINAL_STATUSES = frozenset({"queued", "ringing", "in-progress", "forwarding"})
ENDED_STATUSES = frozenset({"ended", "completed"})

# Outcomes of classify_call
PROCESS = "process"
AWAIT_COMPLETION = "await_completion"
AWAIT_ANALYSIS = "await_analysis"
DISCARD = "discard"


def classify_call(call: dict) -> str:
    """Decide what to do with a call snapshot.

    ended/completed with analysis → PROCESS, still running → AWAIT_COMPLETION,
    ended/completed without analysis → AWAIT_ANALYSIS, anything else
    (failed, unknown terminal states) → DISCARD.
    """
    status = call.get("status")
    if status in ENDED_STATUSES:
        return PROCESS if has_analysis(call) else AWAIT_ANALYSIS
    if status in NON_TERMINAL_STATUSES:
        return AWAIT_COMPLETION
    return DISCARD
