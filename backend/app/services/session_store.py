"""
Planning Session Store - Ephemeral per-request planning state

Architecture:
- One session per planning attempt, created by POST /planning/start
- Single-use: deleted as soon as its stream emits a terminal event
- Never-attached sessions are swept after SESSION_TTL_SECONDS (1 hour)
- The `running` status is the single-flight lock; try_start() is the only
  way to take it and is atomic in every backend

Backends:
    InMemorySessionStore   single process, dict guarded by a threading.Lock
    RedisSessionStore      multi-instance, Lua scripts for compare-and-set

Usage:
    store = get_session_store()

    await store.create(session_id, concept, layout_manifest)
    result = await store.try_start(session_id)   # STARTED / NOT_FOUND / ALREADY_RUNNING
    ...
    await store.set_status(session_id, SessionStatus.COMPLETE)
    await store.delete(session_id)
"""

import asyncio
import json
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import SessionAlreadyExistsError, StorageError
from app.core.logging_config import logger
from app.core.redis_client import redis_client
from app.modules.planning.models import PlanningSession, SessionStatus

# Configuration - loaded from settings (can be overridden via .env)
SESSION_TTL_SECONDS = settings.SESSION_TTL_SECONDS
CLEANUP_INTERVAL_SECONDS = settings.SESSION_CLEANUP_INTERVAL


class StartResult(str, Enum):
    """Result of the atomic pending -> running transition"""
    STARTED = "started"
    NOT_FOUND = "not_found"
    ALREADY_RUNNING = "already_running"


class SessionStore(ABC):
    """Storage contract shared by every backend"""

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._cleanup_task: Optional[asyncio.Task] = None

    @abstractmethod
    async def create(
        self,
        session_id: str,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        cached_intelligence: Optional[Dict[str, Any]] = None
    ) -> PlanningSession:
        """
        Insert a new session in `pending`.

        Raises:
            SessionAlreadyExistsError: the id is already in use
        """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[PlanningSession]:
        """Return the session or None"""

    @abstractmethod
    async def set_status(self, session_id: str, status: SessionStatus) -> None:
        """Update the status; silently does nothing if the session is gone"""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove the session; idempotent"""

    @abstractmethod
    async def try_start(self, session_id: str) -> StartResult:
        """Atomically move a pending session to `running`"""

    @abstractmethod
    async def sweep_expired(self, now: Optional[float] = None) -> int:
        """Delete non-running sessions older than the TTL, returning how many"""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Store statistics for /health"""

    # ==================== Cleanup Task ====================

    async def start_cleanup_task(self, interval_seconds: int = CLEANUP_INTERVAL_SECONDS) -> None:
        """Start background cleanup task"""
        async def cleanup_loop():
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.sweep_expired()
                except Exception as e:
                    logger.error(f"Session cleanup task error: {e}")

        self._cleanup_task = asyncio.create_task(cleanup_loop())
        logger.info(f"Started planning session cleanup task (every {interval_seconds}s)")

    def stop_cleanup_task(self) -> None:
        """Stop background cleanup task"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None


class InMemorySessionStore(SessionStore):
    """
    Process-local session map.

    Every read-modify-write happens under one lock, so two connections racing
    on try_start() for the same id cannot both see a non-running status.
    """

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self._sessions: Dict[str, PlanningSession] = {}
        self._lock = threading.Lock()

    async def create(
        self,
        session_id: str,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        cached_intelligence: Optional[Dict[str, Any]] = None
    ) -> PlanningSession:
        await self.sweep_expired()

        session = PlanningSession(
            session_id=session_id,
            concept=concept,
            layout_manifest=layout_manifest,
            cached_intelligence=cached_intelligence
        )
        with self._lock:
            if session_id in self._sessions:
                raise SessionAlreadyExistsError(session_id)
            self._sessions[session_id] = session

        logger.debug(f"Created planning session {session_id}")
        return session

    async def get(self, session_id: str) -> Optional[PlanningSession]:
        with self._lock:
            return self._sessions.get(session_id)

    async def set_status(self, session_id: str, status: SessionStatus) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.status = status

    async def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    async def try_start(self, session_id: str) -> StartResult:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.status.is_terminal:
                return StartResult.NOT_FOUND
            if session.status == SessionStatus.RUNNING:
                return StartResult.ALREADY_RUNNING
            session.status = SessionStatus.RUNNING
            return StartResult.STARTED

    async def sweep_expired(self, now: Optional[float] = None) -> int:
        now = now if now is not None else time.time()
        with self._lock:
            expired = [
                session_id for session_id, session in self._sessions.items()
                if session.status != SessionStatus.RUNNING
                and session.age_seconds(now) > self.ttl_seconds
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired planning sessions")
        return len(expired)

    async def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            by_status: Dict[str, int] = {}
            for session in self._sessions.values():
                by_status[session.status.value] = by_status.get(session.status.value, 0) + 1
            total = len(self._sessions)

        return {
            "backend": "memory",
            "active_sessions": total,
            "by_status": by_status,
            "ttl_seconds": self.ttl_seconds
        }


# ==================== Redis ====================

KEY_PREFIX = "planning:session:"

# KEYS[1]=session key, ARGV[1]=payload json, ARGV[2]=ttl
_CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then return 0 end
redis.call('HSET', KEYS[1], 'status', 'pending', 'payload', ARGV[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
return 1
"""

# Running sessions are exempt from expiry until they reach a terminal status
_TRY_START_SCRIPT = """
local status = redis.call('HGET', KEYS[1], 'status')
if not status or status == 'complete' or status == 'error' then return 'not_found' end
if status == 'running' then return 'already_running' end
redis.call('HSET', KEYS[1], 'status', 'running')
redis.call('PERSIST', KEYS[1])
return 'started'
"""

# KEYS[1]=session key, ARGV[1]=status, ARGV[2]=ttl
_SET_STATUS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then return 0 end
redis.call('HSET', KEYS[1], 'status', ARGV[1])
if ARGV[1] == 'running' then
  redis.call('PERSIST', KEYS[1])
else
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
return 1
"""


class RedisSessionStore(SessionStore):
    """
    Shared session store for multi-instance deployments.

    Each session is a hash {status, payload}; only `status` ever changes, and
    it changes inside Lua scripts so the compare-and-set is atomic on the
    server. Expiry is native Redis TTL.
    """

    def __init__(self, redis: Optional[Redis] = None, ttl_seconds: int = SESSION_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self._redis = redis

    @property
    def redis(self) -> Redis:
        client = self._redis or redis_client.redis
        if client is None:
            raise StorageError("Redis session store used before Redis was connected")
        return client

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    async def create(
        self,
        session_id: str,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        cached_intelligence: Optional[Dict[str, Any]] = None
    ) -> PlanningSession:
        session = PlanningSession(
            session_id=session_id,
            concept=concept,
            layout_manifest=layout_manifest,
            cached_intelligence=cached_intelligence
        )
        payload = session.to_dict()
        payload.pop("status")

        try:
            created = await self.redis.eval(
                _CREATE_SCRIPT, 1, self._key(session_id), json.dumps(payload), self.ttl_seconds
            )
        except RedisError as e:
            raise StorageError(f"Failed to create planning session: {e}")

        if not int(created):
            raise SessionAlreadyExistsError(session_id)
        return session

    async def get(self, session_id: str) -> Optional[PlanningSession]:
        try:
            data = await self.redis.hgetall(self._key(session_id))
        except RedisError as e:
            raise StorageError(f"Failed to read planning session: {e}")

        if not data or "payload" not in data:
            return None
        return PlanningSession.from_dict({**json.loads(data["payload"]), "status": data["status"]})

    async def set_status(self, session_id: str, status: SessionStatus) -> None:
        try:
            await self.redis.eval(
                _SET_STATUS_SCRIPT, 1, self._key(session_id), status.value, self.ttl_seconds
            )
        except RedisError as e:
            raise StorageError(f"Failed to update planning session: {e}")

    async def delete(self, session_id: str) -> None:
        try:
            await self.redis.delete(self._key(session_id))
        except RedisError as e:
            raise StorageError(f"Failed to delete planning session: {e}")

    async def try_start(self, session_id: str) -> StartResult:
        try:
            result = await self.redis.eval(_TRY_START_SCRIPT, 1, self._key(session_id))
        except RedisError as e:
            raise StorageError(f"Failed to start planning session: {e}")
        return StartResult(result)

    async def sweep_expired(self, now: Optional[float] = None) -> int:
        # Redis expires keys itself
        return 0

    async def get_stats(self) -> Dict[str, Any]:
        active = 0
        try:
            async for _ in self.redis.scan_iter(match=f"{KEY_PREFIX}*", count=100):
                active += 1
        except (RedisError, StorageError) as e:
            logger.warning(f"Could not count planning sessions in Redis: {e}")
            active = -1

        return {
            "backend": "redis",
            "active_sessions": active,
            "ttl_seconds": self.ttl_seconds
        }


# ==================== Factory ====================

def create_session_store(backend: Optional[str] = None) -> SessionStore:
    backend = (backend or settings.SESSION_STORE_BACKEND).lower()
    if backend == "redis":
        return RedisSessionStore()
    if backend != "memory":
        logger.warning(f"Unknown SESSION_STORE_BACKEND '{backend}', using in-memory store")
    return InMemorySessionStore()


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the process-wide session store"""
    global _session_store
    if _session_store is None:
        _session_store = create_session_store()
    return _session_store


def set_session_store(store: Optional[SessionStore]) -> None:
    """Replace the process-wide session store (tests, alternate backends)"""
    global _session_store
    _session_store = store
