"""
Unit Tests for Planning API Endpoints
Tests for: POST /planning/start, GET /planning/stream/{id}, /health
"""
import json
import pytest
import pytest_asyncio

from app.api.v1.endpoints.planning import get_stream_service
from app.modules.planning.models import SessionStatus
from app.modules.planning.orchestrator import PlanningOrchestrator
from app.services.planning_stream import KEEPALIVE_FRAME, PlanningStreamService


def parse_sse(body: str):
    frames = [f for f in body.split("\n\n") if f and f + "\n\n" != KEEPALIVE_FRAME]
    return [json.loads(f[len("data: "):]) for f in frames]


@pytest_asyncio.fixture
async def planning_client(client, session_store, agreeing_gateway):
    """Client whose stream service runs against scripted agents"""
    from app.main import app

    service = PlanningStreamService(
        orchestrator=PlanningOrchestrator(gateway=agreeing_gateway, run_deadline_seconds=10),
        keepalive_interval=5
    )
    app.dependency_overrides[get_stream_service] = lambda: service
    yield client


class TestStartPlanning:
    """Test session creation"""

    @pytest.mark.asyncio
    async def test_start_creates_pending_session(self, client, session_store, concept, layout_manifest):
        response = await client.post('/api/v1/planning/start', json={
            'concept': concept,
            'layout_manifest': layout_manifest,
        })

        assert response.status_code == 201
        data = response.json()
        assert len(data['session_id']) == 32
        assert data['stream_url'] == f"/api/v1/planning/stream/{data['session_id']}"
        session = await session_store.get(data['session_id'])
        assert session.status == SessionStatus.PENDING
        assert session.concept == concept

    @pytest.mark.asyncio
    async def test_start_keeps_cached_intelligence(self, client, session_store, concept, cache_factory):
        cache = cache_factory()
        response = await client.post('/api/v1/planning/start', json={
            'concept': concept,
            'cached_intelligence': cache,
        })

        session = await session_store.get(response.json()['session_id'])
        assert session.cached_intelligence == cache
        assert session.layout_manifest == {}

    @pytest.mark.asyncio
    async def test_start_requires_concept(self, client):
        response = await client.post('/api/v1/planning/start', json={'layout_manifest': {}})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_start_rejects_empty_concept(self, client):
        response = await client.post('/api/v1/planning/start', json={'concept': {}})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_each_start_is_a_new_session(self, client, concept):
        first = await client.post('/api/v1/planning/start', json={'concept': concept})
        second = await client.post('/api/v1/planning/start', json={'concept': concept})

        assert first.json()['session_id'] != second.json()['session_id']


class TestStreamPlanning:
    """Test the SSE endpoint"""

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, planning_client):
        response = await planning_client.get('/api/v1/planning/stream/missing')

        assert response.status_code == 404
        events = parse_sse(response.text)
        assert len(events) == 1
        assert events[0]['type'] == 'error'
        assert events[0]['data']['progress'] == 0

    @pytest.mark.asyncio
    async def test_full_stream(self, planning_client, session_store, concept, layout_manifest):
        start = await planning_client.post('/api/v1/planning/start', json={
            'concept': concept,
            'layout_manifest': layout_manifest,
        })
        session_id = start.json()['session_id']

        response = await planning_client.get(f'/api/v1/planning/stream/{session_id}')

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/event-stream')
        assert response.headers['cache-control'] == 'no-cache'
        assert response.headers['x-accel-buffering'] == 'no'
        events = parse_sse(response.text)
        assert {e['type'] for e in events} <= {'progress', 'complete', 'escalation', 'error'}
        assert events[-1]['type'] == 'complete'
        assert events[-1]['data']['progress'] == 100
        assert await session_store.get(session_id) is None

    @pytest.mark.asyncio
    async def test_stream_is_single_use(self, planning_client, concept):
        start = await planning_client.post('/api/v1/planning/start', json={'concept': concept})
        session_id = start.json()['session_id']

        await planning_client.get(f'/api/v1/planning/stream/{session_id}')
        again = await planning_client.get(f'/api/v1/planning/stream/{session_id}')

        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_running_session_is_409(self, planning_client, session_store, concept, layout_manifest):
        await session_store.create('s1', concept, layout_manifest)
        await session_store.try_start('s1')

        response = await planning_client.get('/api/v1/planning/stream/s1')

        assert response.status_code == 409
        assert parse_sse(response.text)[0]['type'] == 'error'
        assert (await session_store.get('s1')).status == SessionStatus.RUNNING


class TestHealth:
    """Test health endpoint"""

    @pytest.mark.asyncio
    async def test_health_reports_sessions(self, client, session_store, concept, layout_manifest):
        await session_store.create('s1', concept, layout_manifest)

        response = await client.get('/health')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'healthy'
        assert data['sessions']['backend'] == 'memory'
        assert data['sessions']['active_sessions'] == 1

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        response = await client.get('/health', headers={'X-Request-ID': 'abc123'})
        assert response.headers['x-request-id'] == 'abc123'
