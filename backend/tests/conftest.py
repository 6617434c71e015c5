"""
DualPlan AI - Test Configuration and Fixtures
"""
import os
import asyncio
import copy
from typing import Any, AsyncGenerator, Dict, Optional, Union
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['ANTHROPIC_API_KEY'] = 'test-api-key'
os.environ['LOG_FILE'] = ''
os.environ['SESSION_STORE_BACKEND'] = 'memory'

from app.modules.planning.gateway import AgentBudget, AgentResult
from app.modules.planning.models import AgentKind, Proposal, concept_fingerprint
from app.services.session_store import InMemorySessionStore, set_session_store


BASE_PROPOSAL: Dict[str, Any] = {
    "data_model": [
        {"name": "User", "fields": ["id", "email", "display_name"]},
        {"name": "Task", "fields": ["id", "title", "done", "owner_id"]},
    ],
    "auth": {
        "required": True,
        "provider": "email_password",
        "strategy": "jwt",
        "flows": ["signup", "login"],
    },
    "integrations": ["sendgrid"],
    "routing": [
        {"method": "GET", "path": "/"},
        {"method": "GET", "path": "/tasks"},
    ],
    "presentation": {"layout": "sidebar", "theme": "light", "components": ["TaskList"]},
    "tech_stack": {"frontend": "React", "backend": "FastAPI", "database": "PostgreSQL"},
    "notes": "",
}

CONCEPT: Dict[str, Any] = {
    "name": "TaskFlow",
    "audience": "small teams",
    "features": ["task lists", "email reminders"],
}

LAYOUT_MANIFEST: Dict[str, Any] = {
    "pages": [{"path": "/", "sections": ["hero"]}, {"path": "/tasks", "sections": ["list"]}],
}


def make_proposal_dict(**overrides: Any) -> Dict[str, Any]:
    proposal = copy.deepcopy(BASE_PROPOSAL)
    proposal.update(overrides)
    return proposal


Script = Union[Dict[str, Any], str, None]


class ScriptedGateway:
    """
    Stand-in for AgentGateway.

    Each agent's script is a raw proposal dict (success) or a failure message.
    """

    def __init__(self, visual: Script = None, architecture: Script = None, delay: float = 0.0):
        self.scripts = {AgentKind.VISUAL: visual, AgentKind.ARCHITECTURE: architecture}
        self.delay = delay
        self.calls = []
        self.backend_needs = {}

    async def invoke(self, kind: AgentKind, concept, layout_manifest, budget: AgentBudget,
                     backend_needs: Optional[Dict[str, Any]] = None) -> AgentResult:
        self.calls.append(kind)
        self.backend_needs[kind] = backend_needs
        if self.delay:
            await asyncio.sleep(self.delay)
        script = self.scripts[kind]
        if isinstance(script, dict):
            return AgentResult(kind=kind, proposal=Proposal.from_dict(script, kind))
        return AgentResult.failure(kind, script or f"{kind.value} agent failed")


@pytest.fixture
def concept() -> Dict[str, Any]:
    return copy.deepcopy(CONCEPT)


@pytest.fixture
def layout_manifest() -> Dict[str, Any]:
    return copy.deepcopy(LAYOUT_MANIFEST)


@pytest.fixture
def proposal_factory():
    """Build raw proposal dicts, overriding any section"""
    return make_proposal_dict


@pytest.fixture
def gateway_factory():
    """Build scripted gateways: gateway_factory(visual=..., architecture=..., delay=...)"""
    return ScriptedGateway


@pytest.fixture
def agreeing_gateway() -> ScriptedGateway:
    return ScriptedGateway(
        visual=make_proposal_dict(
            presentation={"layout": "topnav", "theme": "dark", "components": ["Kanban"]},
            tech_stack={"frontend": "Vue"},
        ),
        architecture=make_proposal_dict(),
    )


@pytest.fixture
def cache_factory(concept, layout_manifest):
    """Build cached_intelligence payloads for the default concept"""
    def build(visual: Optional[Dict[str, Any]] = None,
              architecture: Optional[Dict[str, Any]] = None,
              fingerprint: Optional[str] = None) -> Dict[str, Any]:
        return {
            "fingerprint": fingerprint or concept_fingerprint(concept, layout_manifest),
            "visual": visual,
            "architecture": architecture,
            "gathered_at": "2026-01-01T00:00:00+00:00",
        }
    return build


@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Fresh in-memory store installed as the process-wide store"""
    store = InMemorySessionStore(ttl_seconds=3600)
    set_session_store(store)
    yield store
    set_session_store(None)


@pytest_asyncio.fixture
async def client(session_store) -> AsyncGenerator[AsyncClient, None]:
    """Create test client against the app"""
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()
