"""
Dual-agent planning endpoints

    POST /planning/start                -> {session_id, stream_url}
    GET  /planning/stream/{session_id}  -> text/event-stream (404 / 409 / 200)
"""

import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.core.config import settings
from app.core.exceptions import SessionAlreadyExistsError, error_response
from app.core.logging_config import logger
from app.schemas.planning import PlanningStartRequest, PlanningStartResponse
from app.services.planning_stream import SSE_HEADERS, PlanningStreamService, planning_stream_service
from app.services.session_store import SessionStore, get_session_store

router = APIRouter()


def get_stream_service() -> PlanningStreamService:
    return planning_stream_service


@router.post(
    "/start",
    response_model=PlanningStartResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_planning(
    request: PlanningStartRequest,
    store: SessionStore = Depends(get_session_store)
):
    """
    Create a planning session. The client then opens the stream URL to run it.
    """
    session_id = uuid.uuid4().hex
    try:
        await store.create(
            session_id,
            request.concept,
            request.layout_manifest,
            request.cached_intelligence
        )
    except SessionAlreadyExistsError as e:
        # 128 random bits - practically unreachable
        logger.error(f"[Planning] {e.message}")
        return JSONResponse(status_code=e.status_code, content=error_response(e))

    logger.info(
        f"[Planning] Created session {session_id}"
        + (" (with cached intelligence)" if request.cached_intelligence else "")
    )
    return PlanningStartResponse(
        session_id=session_id,
        stream_url=f"/api/{settings.API_VERSION}/planning/stream/{session_id}"
    )


@router.get("/stream/{session_id}")
async def stream_planning(
    session_id: str,
    service: PlanningStreamService = Depends(get_stream_service)
):
    """
    Attach to a planning session and stream its progress as SSE.

    The HTTP status only reflects whether the run could start; how the run
    ended is carried by the final event.
    """
    stream = await service.open_stream(session_id)
    return StreamingResponse(
        stream.frames,
        status_code=stream.status_code,
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )
