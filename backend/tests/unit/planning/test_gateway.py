"""
Unit Tests for the Agent Gateway and planning specialists
"""
import asyncio
import json
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock

from app.core.exceptions import AIResponseParseError
from app.modules.agents import AgentContext, ArchitectureSpecialistAgent, VisualSpecialistAgent
from app.modules.planning.gateway import AgentBudget, AgentGateway
from app.modules.planning.models import AgentKind


BUDGET = AgentBudget(max_tokens=1024, timeout_seconds=1.0)


def fake_agent(process):
    agent = MagicMock()
    agent.name = "FakeSpecialist"
    agent.process = process
    return agent


def gateway_with(kind, agent):
    other = AgentKind.ARCHITECTURE if kind == AgentKind.VISUAL else AgentKind.VISUAL
    return AgentGateway(agents={kind: agent, other: fake_agent(AsyncMock())})


class TestGatewayInvoke:
    """Test success and the failure modes folded into AgentResult"""

    @pytest.mark.asyncio
    async def test_success_normalizes_proposal(self, proposal_factory, concept, layout_manifest):
        agent = fake_agent(AsyncMock(return_value=proposal_factory()))
        gateway = gateway_with(AgentKind.VISUAL, agent)

        result = await gateway.invoke(AgentKind.VISUAL, concept, layout_manifest, BUDGET)

        assert result.ok
        assert result.error is None
        assert result.proposal.source == AgentKind.VISUAL
        assert result.proposal.routing == ["GET /", "GET /tasks"]
        context = agent.process.call_args.args[0]
        assert context.max_tokens == 1024
        assert context.concept == concept

    @pytest.mark.asyncio
    async def test_timeout_becomes_failure(self, concept, layout_manifest):
        async def slow(context):
            await asyncio.sleep(5)

        gateway = gateway_with(AgentKind.ARCHITECTURE, fake_agent(slow))

        result = await gateway.invoke(
            AgentKind.ARCHITECTURE, concept, layout_manifest,
            AgentBudget(max_tokens=1024, timeout_seconds=0.01)
        )

        assert not result.ok
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_unparseable_reply_becomes_failure(self, concept, layout_manifest):
        agent = fake_agent(AsyncMock(side_effect=AIResponseParseError("Agent response did not contain a JSON object")))
        gateway = gateway_with(AgentKind.VISUAL, agent)

        result = await gateway.invoke(AgentKind.VISUAL, concept, layout_manifest, BUDGET)

        assert not result.ok
        assert "JSON object" in result.error

    @pytest.mark.asyncio
    async def test_missing_axes_becomes_failure(self, concept, layout_manifest):
        agent = fake_agent(AsyncMock(return_value={"notes": "forgot everything"}))
        gateway = gateway_with(AgentKind.VISUAL, agent)

        result = await gateway.invoke(AgentKind.VISUAL, concept, layout_manifest, BUDGET)

        assert not result.ok
        assert "data_model" in result.error

    @pytest.mark.asyncio
    async def test_wrong_typed_fields_becomes_failure(self, concept, layout_manifest):
        agent = fake_agent(AsyncMock(return_value={
            "data_model": [{"name": "User", "fields": 5}],
            "auth": {"required": True},
            "routing": [],
        }))
        gateway = gateway_with(AgentKind.VISUAL, agent)

        result = await gateway.invoke(AgentKind.VISUAL, concept, layout_manifest, BUDGET)

        assert not result.ok
        assert "malformed proposal" in result.error
        assert "fields" in result.error

    @pytest.mark.asyncio
    async def test_backend_needs_reach_agent_context(self, proposal_factory, concept, layout_manifest):
        agent = fake_agent(AsyncMock(return_value=proposal_factory()))
        gateway = gateway_with(AgentKind.ARCHITECTURE, agent)
        needs = {"features": {"auth_required": True}}

        await gateway.invoke(AgentKind.ARCHITECTURE, concept, layout_manifest, BUDGET, backend_needs=needs)

        assert agent.process.call_args.args[0].backend_needs == needs

    @pytest.mark.asyncio
    async def test_transport_error_becomes_failure(self, concept, layout_manifest):
        agent = fake_agent(AsyncMock(side_effect=httpx.ConnectError("connection refused")))
        gateway = gateway_with(AgentKind.ARCHITECTURE, agent)

        result = await gateway.invoke(AgentKind.ARCHITECTURE, concept, layout_manifest, BUDGET)

        assert not result.ok
        assert "unavailable" in result.error


class TestSpecialists:
    """Test the specialist agents against a mocked Claude client"""

    def test_each_specialist_uses_its_own_model(self):
        from app.core.config import settings

        assert VisualSpecialistAgent().model == settings.CLAUDE_VISUAL_MODEL
        assert ArchitectureSpecialistAgent().model == settings.CLAUDE_ARCHITECTURE_MODEL

    def test_system_prompts_share_output_contract(self):
        visual = VisualSpecialistAgent().system_prompt
        architecture = ArchitectureSpecialistAgent().system_prompt

        assert visual != architecture
        assert '"data_model"' in visual
        assert '"data_model"' in architecture

    @pytest.mark.asyncio
    async def test_process_parses_fenced_json(self, proposal_factory, concept, layout_manifest):
        agent = VisualSpecialistAgent()
        reply = f"Here is my plan:\n```json\n{json.dumps(proposal_factory())}\n```"
        agent.claude = MagicMock()
        agent.claude.generate = AsyncMock(return_value={"content": reply})

        result = await agent.process(AgentContext(concept=concept, layout_manifest=layout_manifest, max_tokens=2048))

        assert result["integrations"] == ["sendgrid"]
        kwargs = agent.claude.generate.call_args.kwargs
        assert kwargs["max_tokens"] == 2048
        assert kwargs["model"] == agent.model
        assert "TaskFlow" in kwargs["prompt"]

    @pytest.mark.asyncio
    async def test_process_rejects_prose(self, concept, layout_manifest):
        agent = ArchitectureSpecialistAgent()
        agent.claude = MagicMock()
        agent.claude.generate = AsyncMock(return_value={"content": "I cannot help with that."})

        with pytest.raises(AIResponseParseError):
            await agent.process(AgentContext(concept=concept, layout_manifest=layout_manifest))

    def test_prompt_includes_layout_analysis(self, concept, layout_manifest):
        agent = VisualSpecialistAgent()
        context = AgentContext(
            concept=concept,
            layout_manifest=layout_manifest,
            backend_needs={"api_endpoints": [{"method": "GET", "path": "/api/tasks", "purpose": "Fetch Task data"}]},
        )

        prompt = agent._build_prompt(context)

        assert "BACKEND NEEDS INFERRED FROM THE LAYOUT" in prompt
        assert "/api/tasks" in prompt

    def test_prompt_without_layout_analysis(self, concept, layout_manifest):
        prompt = ArchitectureSpecialistAgent()._build_prompt(
            AgentContext(concept=concept, layout_manifest=layout_manifest)
        )

        assert "BACKEND NEEDS" not in prompt
        assert "LAYOUT MANIFEST" in prompt
