from app.services.session_store import (
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    StartResult,
    get_session_store,
)
from app.services.planning_stream import PlanningStreamService, planning_stream_service
