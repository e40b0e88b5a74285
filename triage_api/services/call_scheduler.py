"""Delayed retry loops for calls whose outcome is not known yet.

Two loops share one wake slot per call id:

* completion poll: the call was still queued/ringing/in-progress when the
  webhook arrived; re-fetch it until it ends.
* analysis retry: the call ended but Vapi had not produced the analysis
  yet; re-fetch it until the analysis shows up.

Both give up after ``max_retries`` wakes and mark the call permanently
failed. A wake is cancelled by removing the call from the registry (the
handler re-checks before acting) or by scheduling another wake under the
same call id, which replaces the queued one.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from triage_api.core.config import settings
from triage_api.services.call_analysis import AnalysisProcessor, extract_analysis, has_analysis
from triage_api.services.call_status import (
    AWAIT_ANALYSIS,
    AWAIT_COMPLETION,
    PROCESS,
    classify_call,
)
from triage_api.services.pending_calls import PendingCallRegistry
from triage_api.services.vapi_client import VapiClient, VapiClientError

logger = logging.getLogger(__name__)

WakeCallback = Callable[[], Awaitable[None]]


class TaskScheduler:
    """Keyed delayed-task queue. At most one queued wake per key."""

    def schedule(self, key: str, delay_ms: int, callback: WakeCallback) -> None:
        raise NotImplementedError

    def cancel(self, key: str) -> bool:
        raise NotImplementedError

    def pending(self) -> list[str]:
        raise NotImplementedError


class AsyncioTaskScheduler(TaskScheduler):
    """TaskScheduler on the running event loop (loop.call_later + create_task)."""

    def __init__(self):
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, key: str, delay_ms: int, callback: WakeCallback) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(delay_ms / 1000, self._fire, key, callback)

    def _fire(self, key: str, callback: WakeCallback) -> None:
        self._handles.pop(key, None)
        task = asyncio.create_task(callback())
        # keep a reference until done, the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending(self) -> list[str]:
        return list(self._handles)

    async def shutdown(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


class RetryPolicy:
    def __init__(
        self,
        completion_initial_delay_ms: int = settings.COMPLETION_POLL_INITIAL_DELAY_MS,
        completion_max_delay_ms: int = settings.COMPLETION_POLL_MAX_DELAY_MS,
        completion_error_max_delay_ms: int = settings.COMPLETION_POLL_ERROR_MAX_DELAY_MS,
        analysis_initial_delay_ms: int = settings.ANALYSIS_RETRY_INITIAL_DELAY_MS,
        analysis_max_delay_ms: int = settings.ANALYSIS_RETRY_MAX_DELAY_MS,
        max_retries: int = settings.MAX_CALL_RETRIES,
    ):
        self.completion_initial_delay_ms = completion_initial_delay_ms
        self.completion_max_delay_ms = completion_max_delay_ms
        self.completion_error_max_delay_ms = completion_error_max_delay_ms
        self.analysis_initial_delay_ms = analysis_initial_delay_ms
        self.analysis_max_delay_ms = analysis_max_delay_ms
        self.max_retries = max_retries

    def next_completion_delay(self, delay_ms: int) -> int:
        """Call still running: grow the poll interval by 20%."""
        return round(min(delay_ms * 1.2, self.completion_max_delay_ms))

    def next_completion_error_delay(self, delay_ms: int) -> int:
        """Vapi lookup failed: back off by 50%."""
        return round(min(delay_ms * 1.5, self.completion_error_max_delay_ms))

    def analysis_delay(self, retry_count: int) -> int:
        return round(min(self.analysis_initial_delay_ms * 2 ** (retry_count - 1), self.analysis_max_delay_ms))


class CallRetryScheduler:

    def __init__(
        self,
        registry: PendingCallRegistry,
        vapi: VapiClient,
        processor: AnalysisProcessor,
        task_scheduler: TaskScheduler,
        policy: RetryPolicy | None = None,
    ):
        self.registry = registry
        self.vapi = vapi
        self.processor = processor
        self.task_scheduler = task_scheduler
        self.policy = policy or RetryPolicy()

    def schedule_completion_check(self, call_id: str, delay_ms: int | None = None) -> None:
        delay_ms = delay_ms if delay_ms is not None else self.policy.completion_initial_delay_ms
        logger.info("Completion check for call %s in %d ms", call_id, delay_ms)
        self.task_scheduler.schedule(
            call_id, delay_ms, lambda: self._guarded(call_id, self._completion_wake(call_id, delay_ms))
        )

    def schedule_analysis_retry(self, call_id: str, delay_ms: int | None = None) -> None:
        delay_ms = delay_ms if delay_ms is not None else self.policy.analysis_initial_delay_ms
        logger.info("Analysis retry for call %s in %d ms", call_id, delay_ms)
        self.task_scheduler.schedule(
            call_id, delay_ms, lambda: self._guarded(call_id, self._analysis_wake(call_id))
        )

    def resolve(self, call_id: str) -> None:
        """Stop tracking a call: drop its record and any queued wake."""
        self.registry.remove(call_id)
        self.task_scheduler.cancel(call_id)

    async def _guarded(self, call_id: str, wake: Awaitable[None]) -> None:
        # Nothing may escape a timer callback
        try:
            await wake
        except Exception:
            logger.exception("Unexpected error in retry wake for call %s", call_id)
            await self.mark_permanently_failed(call_id, "Internal error while retrying")

    async def _completion_wake(self, call_id: str, delay_ms: int) -> None:
        if self.registry.get(call_id) is None:
            logger.debug("Completion check for %s: already resolved", call_id)
            return
        retry_count = self.registry.increment_retry(call_id)
        if retry_count is None:
            return
        max_retries = self.policy.max_retries

        try:
            call = await self.vapi.get_call(call_id)
        except VapiClientError as e:
            if not self._still_pending(call_id):
                return
            if retry_count < max_retries:
                next_delay = self.policy.next_completion_error_delay(delay_ms)
                logger.warning(
                    "Vapi lookup for %s failed (attempt %d/%d), retrying in %d ms: %s",
                    call_id, retry_count, max_retries, next_delay, e,
                )
                self.schedule_completion_check(call_id, next_delay)
            else:
                await self.mark_permanently_failed(call_id, f"Vapi lookup failed after {retry_count} attempts: {e}")
            return

        if not self._still_pending(call_id):
            return
        self.registry.update_call_info(call_id, call)
        action = classify_call(call)
        status = call.get("status")

        if action == AWAIT_COMPLETION:
            if retry_count < max_retries:
                next_delay = self.policy.next_completion_delay(delay_ms)
                logger.info(
                    "Call %s still %s (attempt %d/%d), checking again in %d ms",
                    call_id, status, retry_count, max_retries, next_delay,
                )
                self.schedule_completion_check(call_id, next_delay)
            else:
                await self.mark_permanently_failed(call_id, f"Call still {status} after {retry_count} checks")
        elif action == PROCESS:
            await self._finalize(call_id, call)
        elif action == AWAIT_ANALYSIS:
            logger.info("Call %s ended without analysis, switching to analysis retries", call_id)
            self.schedule_analysis_retry(call_id)
        else:
            await self.mark_permanently_failed(call_id, f"Call ended with status {status}")

    async def _analysis_wake(self, call_id: str) -> None:
        if self.registry.get(call_id) is None:
            logger.debug("Analysis retry for %s: already resolved", call_id)
            return
        retry_count = self.registry.increment_retry(call_id)
        if retry_count is None:
            return
        max_retries = self.policy.max_retries

        call = None
        try:
            call = await self.vapi.get_call(call_id)
            self.registry.update_call_info(call_id, call)
        except VapiClientError as e:
            logger.warning("Vapi lookup for %s failed during analysis retry: %s", call_id, e)

        if not self._still_pending(call_id):
            return
        if call is not None and has_analysis(call):
            await self._finalize(call_id, call)
        elif retry_count < max_retries:
            next_delay = self.policy.analysis_delay(retry_count)
            logger.info(
                "Analysis for %s not ready (attempt %d/%d), retrying in %d ms",
                call_id, retry_count, max_retries, next_delay,
            )
            self.schedule_analysis_retry(call_id, next_delay)
        else:
            await self.mark_permanently_failed(call_id, f"Analysis not available after {retry_count} attempts")

    def _still_pending(self, call_id: str) -> bool:
        # The fetch yields to the loop; a webhook may have finalized the call meanwhile
        if self.registry.get(call_id) is None:
            logger.info("Call %s was resolved while its wake was fetching, skipping", call_id)
            return False
        return True

    async def _finalize(self, call_id: str, call: dict) -> dict:
        result = await self.processor.process(call)
        self.resolve(call_id)
        logger.info("Call %s finalized: call_successful=%s", call_id, result.get("call_successful"))
        return result

    async def mark_permanently_failed(self, call_id: str, reason: str) -> None:
        record = self.registry.get(call_id)
        self.resolve(call_id)
        if record is None:
            # finalized by another path in the meantime
            return
        logger.error("Call %s permanently failed: %s", call_id, reason)
        call = record.call_info
        await self.processor.run_business_logic(call, extract_analysis(call), False, reason)
