"""
Agent Gateway

Runs one specialist under its own token and time budget and folds every
expected failure (timeout, API error, unparseable reply) into an AgentResult.
Nothing the agents do propagates out of invoke().
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from anthropic import APIError

from app.core.exceptions import AgentTimeoutError, AIResponseParseError, DualPlanError
from app.core.logging_config import logger
from app.modules.agents import AgentContext, BaseAgent, architecture_agent, visual_agent
from app.modules.planning.models import AgentKind, Proposal


@dataclass(frozen=True)
class AgentBudget:
    max_tokens: int
    timeout_seconds: float


@dataclass
class AgentResult:
    """Either a proposal or a failure message, never both"""
    kind: AgentKind
    proposal: Optional[Proposal] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.proposal is not None

    @classmethod
    def failure(cls, kind: AgentKind, error: str, duration_ms: float = 0.0) -> "AgentResult":
        return cls(kind=kind, error=error, duration_ms=duration_ms)


class AgentGateway:
    """Dispatches to the visual or architecture specialist"""

    def __init__(self, agents: Optional[Dict[AgentKind, BaseAgent]] = None):
        self.agents = agents or {
            AgentKind.VISUAL: visual_agent,
            AgentKind.ARCHITECTURE: architecture_agent,
        }

    async def invoke(
        self,
        kind: AgentKind,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        budget: AgentBudget,
        backend_needs: Optional[Dict[str, Any]] = None
    ) -> AgentResult:
        agent = self.agents[kind]
        context = AgentContext(
            concept=concept,
            layout_manifest=layout_manifest,
            max_tokens=budget.max_tokens,
            backend_needs=backend_needs or {}
        )
        start = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - start) * 1000

        try:
            raw = await asyncio.wait_for(agent.process(context), timeout=budget.timeout_seconds)
        except asyncio.TimeoutError:
            error = AgentTimeoutError(kind.value, budget.timeout_seconds)
            logger.warning(f"[Gateway] {error.message}")
            return AgentResult.failure(kind, error.message, elapsed())
        except DualPlanError as e:
            logger.warning(f"[Gateway] {kind.value} agent failed [{e.code}]: {e.message}")
            return AgentResult.failure(kind, e.message, elapsed())
        except (APIError, httpx.HTTPError, OSError) as e:
            logger.warning(f"[Gateway] {kind.value} agent transport error: {type(e).__name__}: {e}")
            return AgentResult.failure(kind, f"{kind.value} agent unavailable: {type(e).__name__}", elapsed())

        try:
            proposal = Proposal.from_dict(raw, kind)
        except (AIResponseParseError, TypeError, ValueError, AttributeError) as e:
            message = e.message if isinstance(e, AIResponseParseError) else f"{type(e).__name__}: {e}"
            logger.warning(f"[Gateway] {kind.value} agent returned a malformed proposal: {message}")
            return AgentResult.failure(kind, f"{kind.value} agent returned a malformed proposal: {message}", elapsed())

        duration_ms = elapsed()
        logger.log_agent_event(agent.name, "proposal_ready", duration_ms=duration_ms)
        return AgentResult(kind=kind, proposal=proposal, duration_ms=duration_ms)


# Create singleton instance
agent_gateway = AgentGateway()
