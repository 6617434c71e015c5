"""
Planning Stream Service - SSE transport for one planning run per session

Each attached connection gets:
- one detached producer task running the orchestrator
- one bounded channel the producer writes frames into
- one async generator (the response body) reading the channel

A client disconnect only closes the channel; the producer keeps going, still
records the outcome and still deletes the session.

Frame format:
    data: {"type": "progress"|"complete"|"escalation"|"error", "data": {...}}\\n\\n
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Set, Tuple

from app.core.config import settings
from app.core.exceptions import SessionConflictError, SessionNotFoundError
from app.core.logging_config import logger, set_session_id
from app.modules.planning.models import (
    CompleteOutcome,
    ErrorOutcome,
    EscalationOutcome,
    PlanningOutcome,
    PlanningSession,
    ProgressEvent,
    SessionStatus,
)
from app.modules.planning.orchestrator import PlanningOrchestrator, planning_orchestrator
from app.services.session_store import SessionStore, StartResult, get_session_store


KEEPALIVE_FRAME = ": keepalive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Strong references to in-flight producers so they are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def format_sse_event(event_type: str, data: Dict[str, Any]) -> str:
    """Frame one event as `data: <json>\\n\\n`"""
    return f"data: {json.dumps({'type': event_type, 'data': data}, default=str)}\n\n"


def progress_frame(event: ProgressEvent) -> str:
    data: Dict[str, Any] = {
        "stage": event.stage,
        "progress": event.percent,
        "message": event.message,
    }
    if event.details:
        data["details"] = event.details
    return format_sse_event("progress", data)


def error_frame(message: str) -> str:
    return format_sse_event("error", {
        "stage": "error",
        "progress": 0,
        "message": message,
        "error": message,
    })


def terminal_event(outcome: PlanningOutcome) -> Tuple[str, SessionStatus]:
    """Map an outcome to its terminal frame and the session's final status"""
    if isinstance(outcome, CompleteOutcome):
        cache = outcome.cached_intelligence
        frame = format_sse_event("complete", {
            "stage": "complete",
            "progress": 100,
            "message": (
                "Build plan ready (single specialist, unverified)" if outcome.single_sourced
                else "Build plan ready"
            ),
            "architecture": outcome.architecture,
            "details": outcome.details,
            "cached_intelligence": cache.to_dict() if cache else None,
        })
        return frame, SessionStatus.COMPLETE

    if isinstance(outcome, EscalationOutcome):
        cache = outcome.cached_intelligence
        frame = format_sse_event("escalation", {
            "stage": "escalated",
            "progress": 80,
            "message": "Specialists disagree - please choose a direction",
            "reason": outcome.reason,
            "proposal_a": outcome.proposal_a.to_dict(),
            "proposal_b": outcome.proposal_b.to_dict(),
            "divergent_issues": outcome.divergent_issues,
            "details": outcome.details,
            "cached_intelligence": cache.to_dict() if cache else None,
        })
        # Escalation is a valid end state, not a failure
        return frame, SessionStatus.COMPLETE

    if isinstance(outcome, ErrorOutcome):
        return error_frame(outcome.error), SessionStatus.ERROR

    raise TypeError(f"Unknown planning outcome: {type(outcome).__name__}")


class EventChannel:
    """
    Bounded frame queue between producer and consumer.

    Progress frames are dropped when the queue is full or the consumer has
    gone; the terminal frame and the close marker always get in.
    """

    _CLOSE = object()

    def __init__(self, maxsize: int):
        # Room for the terminal frame plus the close marker
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max(2, maxsize))
        self.closed = False

    def send(self, frame: str) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            logger.warning("Planning event queue full, dropping progress frame")
            return False

    def _force(self, item: Any) -> None:
        while True:
            try:
                self.queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()

    def send_terminal(self, frame: str) -> None:
        if self.closed:
            logger.info("Client disconnected before terminal event, dropping it")
            return
        self._force(frame)

    def close(self) -> None:
        self._force(self._CLOSE)

    async def frames(self, keepalive_interval: float) -> AsyncIterator[str]:
        """Yield frames until closed; keepalive comments fill the silences"""
        try:
            while True:
                try:
                    item = await asyncio.wait_for(self.queue.get(), timeout=keepalive_interval)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if item is self._CLOSE:
                    break
                yield item
        finally:
            # Disconnect or normal end - either way nobody reads any more
            self.closed = True


@dataclass
class PlanningStream:
    """HTTP status plus the SSE body for one stream request"""
    status_code: int
    frames: AsyncIterator[str]


async def _single_frame(frame: str) -> AsyncIterator[str]:
    yield frame


class PlanningStreamService:
    """Attaches planning runs to streaming connections"""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        orchestrator: Optional[PlanningOrchestrator] = None,
        queue_size: Optional[int] = None,
        keepalive_interval: Optional[float] = None
    ):
        self._store = store
        self.orchestrator = orchestrator or planning_orchestrator
        self.queue_size = queue_size or settings.PLANNING_EVENT_QUEUE_SIZE
        self.keepalive_interval = keepalive_interval or settings.SSE_KEEPALIVE_INTERVAL

    @property
    def store(self) -> SessionStore:
        return self._store or get_session_store()

    async def open_stream(self, session_id: str) -> PlanningStream:
        """
        Resolve the session and either reject (404/409) or start the run (200).

        The transition to `running` is a single atomic try_start() so two
        simultaneous connections can never both start the orchestrator.
        """
        result = await self.store.try_start(session_id)

        if result == StartResult.NOT_FOUND:
            error = SessionNotFoundError(session_id)
            logger.warning(f"[PlanningStream] {error.message}")
            return PlanningStream(error.status_code, _single_frame(error_frame(error.message)))

        if result == StartResult.ALREADY_RUNNING:
            error = SessionConflictError(session_id)
            logger.warning(f"[PlanningStream] {error.message}")
            return PlanningStream(error.status_code, _single_frame(error_frame(error.message)))

        session = await self.store.get(session_id)
        if session is None:
            # Swept or deleted between try_start and get
            error = SessionNotFoundError(session_id)
            return PlanningStream(error.status_code, _single_frame(error_frame(error.message)))

        channel = EventChannel(self.queue_size)
        task = asyncio.create_task(self._produce(session, channel))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

        logger.info(f"[PlanningStream] Started planning run for session {session_id}")
        return PlanningStream(200, channel.frames(self.keepalive_interval))

    async def _produce(self, session: PlanningSession, channel: EventChannel) -> None:
        session_id = session.session_id
        set_session_id(session_id)

        def on_progress(event: ProgressEvent) -> None:
            channel.send(progress_frame(event))

        try:
            try:
                outcome = await self.orchestrator.execute(
                    session.concept,
                    session.layout_manifest,
                    on_progress,
                    session.cached_intelligence
                )
                frame, status = terminal_event(outcome)
            except Exception as e:
                logger.log_error_with_context(e, "planning run")
                outcome = ErrorOutcome(error=f"Planning failed unexpectedly: {type(e).__name__}")
                frame, status = terminal_event(outcome)

            channel.send_terminal(frame)
            await self._record_status(session_id, status)
            logger.info(f"[PlanningStream] Session {session_id} finished: {type(outcome).__name__}")
        finally:
            await self._discard(session_id)
            channel.close()

    async def _record_status(self, session_id: str, status: SessionStatus) -> None:
        try:
            await self.store.set_status(session_id, status)
        except Exception as e:
            logger.error(f"[PlanningStream] Could not set status for {session_id}: {e}")

    async def _discard(self, session_id: str) -> None:
        try:
            await self.store.delete(session_id)
        except Exception as e:
            logger.error(f"[PlanningStream] Could not delete session {session_id}: {e}")


async def cancel_background_runs() -> int:
    """Cancel in-flight planning runs (shutdown)"""
    tasks = list(_background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} in-flight planning runs")
    return len(tasks)


def active_run_count() -> int:
    return len(_background_tasks)


# Create singleton instance
planning_stream_service = PlanningStreamService()
