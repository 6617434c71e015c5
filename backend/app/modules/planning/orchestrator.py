"""
Planning Orchestrator

Drives both specialists over one (concept, layout manifest) pair and resolves
to exactly one PlanningOutcome:

    resume check (0%) -> layout analysis and parallel specialists (0-40%)
    -> reconciliation (40-80%) -> decision (80-100%)

Expected failures (agent timeout, agent error, malformed output, the run
deadline) come back as ErrorOutcome; execute() only raises for programming
faults.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from app.core.config import settings
from app.core.exceptions import AIResponseParseError, PlanningDeadlineError
from app.core.logging_config import logger, get_session_id
from app.modules.planning.gateway import AgentBudget, AgentGateway, AgentResult, agent_gateway
from app.modules.planning.layout_analyzer import analyze_layout
from app.modules.planning.models import (
    AgentKind,
    CachedIntelligence,
    CompleteOutcome,
    ErrorOutcome,
    EscalationOutcome,
    PlanningOutcome,
    ProgressEvent,
    Proposal,
    concept_fingerprint,
)
from app.modules.planning.reconciler import (
    Disagreement,
    divergent_issues,
    escalation_reason,
    merge_proposals,
    score_disagreement,
    single_source_plan,
)


ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


# Stage slugs - clients and tests key off these, not the messages
STAGE_RESUMING = "resuming"
STAGE_ANALYZING = "analyzing"
STAGE_DRAFTING = "drafting"
STAGE_RECONCILING = "reconciling"
STAGE_DECIDING = "deciding"

STAGE_MESSAGES = {
    STAGE_RESUMING: "Resuming from previous analysis",
    STAGE_ANALYZING: "Visual and architecture specialists are analyzing your concept",
    STAGE_DRAFTING: "Specialist proposals drafted",
    STAGE_RECONCILING: "Comparing specialist proposals",
    STAGE_DECIDING: "Finalizing build plan",
}


class ProgressReporter:
    """
    Forwards stage boundaries to the caller's callback.

    Percent never goes backwards, and a failing callback is logged and
    otherwise ignored.
    """

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.percent = 0

    async def emit(self, stage: str, percent: int, details: Optional[Dict[str, Any]] = None) -> None:
        self.percent = max(self.percent, min(100, percent))
        event = ProgressEvent(
            stage=stage,
            percent=self.percent,
            message=STAGE_MESSAGES.get(stage, stage),
            details=details
        )
        logger.log_planning_event(get_session_id() or "-", stage, self.percent)

        if self.callback is None:
            return
        try:
            result = self.callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"[Orchestrator] Progress callback failed at '{stage}': {e}")


class PlanningOrchestrator:
    """Runs the dual-agent pipeline for one session"""

    def __init__(
        self,
        gateway: Optional[AgentGateway] = None,
        agent_timeout_seconds: Optional[float] = None,
        agent_max_tokens: Optional[int] = None,
        run_deadline_seconds: Optional[float] = None,
        escalation_threshold: Optional[float] = None
    ):
        self.gateway = gateway or agent_gateway
        self.budget = AgentBudget(
            max_tokens=agent_max_tokens or settings.PLANNING_AGENT_MAX_TOKENS,
            timeout_seconds=agent_timeout_seconds or settings.PLANNING_AGENT_TIMEOUT_SECONDS
        )
        self.run_deadline_seconds = run_deadline_seconds or settings.PLANNING_RUN_DEADLINE_SECONDS
        self.escalation_threshold = (
            escalation_threshold if escalation_threshold is not None
            else settings.PLANNING_ESCALATION_THRESHOLD
        )

    async def execute(
        self,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
        cached_intelligence: Optional[Dict[str, Any]] = None
    ) -> PlanningOutcome:
        """
        Produce one outcome for the concept, reporting each stage boundary.

        The whole run is bounded by run_deadline_seconds so a wedged agent can
        never leave a session running without a terminal outcome.
        """
        reporter = ProgressReporter(on_progress)
        try:
            return await asyncio.wait_for(
                self._run_pipeline(concept, layout_manifest, reporter, cached_intelligence),
                timeout=self.run_deadline_seconds
            )
        except asyncio.TimeoutError:
            error = PlanningDeadlineError(self.run_deadline_seconds)
            logger.error(f"[Orchestrator] {error.message}")
            return ErrorOutcome(error=error.message)

    # ===== Stage 1: resume check =====

    def _load_cache(
        self,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        cached_intelligence: Optional[Dict[str, Any]]
    ) -> Dict[AgentKind, Proposal]:
        if not cached_intelligence:
            return {}
        if not isinstance(cached_intelligence, dict):
            logger.warning("[Orchestrator] Ignoring cached intelligence that is not an object")
            return {}
        # Fingerprint first: a cache for another input is never parsed
        if cached_intelligence.get("fingerprint") != concept_fingerprint(concept, layout_manifest):
            logger.info("[Orchestrator] Cached intelligence is for a different concept, ignoring")
            return {}
        try:
            cache = CachedIntelligence.from_dict(cached_intelligence)
        except (AIResponseParseError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"[Orchestrator] Ignoring invalid cached intelligence: {e}")
            return {}
        return cache.proposals()

    async def _invoke_all(
        self,
        kinds: List[AgentKind],
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        backend_needs: Dict[str, Any]
    ) -> List[AgentResult]:
        """Run the specialists concurrently; an unexpected fault in one never cancels the other"""
        outcomes = await asyncio.gather(
            *(
                self.gateway.invoke(kind, concept, layout_manifest, self.budget, backend_needs=backend_needs)
                for kind in kinds
            ),
            return_exceptions=True
        )
        results = []
        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.log_error_with_context(outcome, f"{kind.value} specialist")
                outcome = AgentResult.failure(kind, f"{kind.value} agent failed unexpectedly: {type(outcome).__name__}")
            results.append(outcome)
        return results

    # ===== Pipeline =====

    async def _run_pipeline(
        self,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        reporter: ProgressReporter,
        cached_intelligence: Optional[Dict[str, Any]]
    ) -> PlanningOutcome:
        results: Dict[AgentKind, AgentResult] = {
            kind: AgentResult(kind=kind, proposal=proposal)
            for kind, proposal in self._load_cache(concept, layout_manifest, cached_intelligence).items()
        }
        if results:
            await reporter.emit(STAGE_RESUMING, 0, {"cached_agents": sorted(k.value for k in results)})

        # Stage 2: parallel analysis, only for agents the cache does not cover
        missing = [kind for kind in (AgentKind.VISUAL, AgentKind.ARCHITECTURE) if kind not in results]
        if missing:
            backend_needs = analyze_layout(layout_manifest)
            await reporter.emit(STAGE_ANALYZING, 0, {
                "agents": [k.value for k in missing],
                "layout": backend_needs.summary(),
            })
            fresh = await self._invoke_all(missing, concept, layout_manifest, backend_needs.to_dict())
            for result in fresh:
                results[result.kind] = result
            await reporter.emit(STAGE_DRAFTING, 40, {
                "succeeded": [r.kind.value for r in fresh if r.ok],
                "failed": {r.kind.value: r.error for r in fresh if not r.ok},
            })

        visual = results[AgentKind.VISUAL]
        architecture = results[AgentKind.ARCHITECTURE]
        cache = self._build_cache(concept, layout_manifest, visual, architecture)

        if not visual.ok and not architecture.ok:
            await reporter.emit(STAGE_DECIDING, 80)
            return ErrorOutcome(error=f"Both specialists failed: visual: {visual.error}; architecture: {architecture.error}")

        # Stage 3: reconciliation
        disagreement: Optional[Disagreement] = None
        if visual.ok and architecture.ok:
            if missing:
                await reporter.emit(STAGE_RECONCILING, 40)
            disagreement = score_disagreement(visual.proposal, architecture.proposal)
            if missing:
                await reporter.emit(STAGE_RECONCILING, 80, disagreement.to_dict())

        # Stage 4: decision
        await reporter.emit(STAGE_DECIDING, 80)
        return self._decide(visual, architecture, disagreement, cache)

    def _decide(
        self,
        visual: AgentResult,
        architecture: AgentResult,
        disagreement: Optional[Disagreement],
        cache: CachedIntelligence
    ) -> PlanningOutcome:
        if disagreement is None:
            survivor, failed = (visual, architecture) if visual.ok else (architecture, visual)
            logger.warning(f"[Orchestrator] {failed.kind.value} specialist failed, planning from {survivor.kind.value} only")
            return CompleteOutcome(
                architecture=single_source_plan(survivor.proposal, failed.error or "unknown error"),
                details={
                    "single_sourced": True,
                    "source": survivor.kind.value,
                    "failed_agent": failed.kind.value,
                    "failure": failed.error,
                },
                cached_intelligence=cache
            )

        details = {
            "single_sourced": False,
            "disagreement": disagreement.to_dict(),
            "threshold": self.escalation_threshold,
        }

        if disagreement.score >= self.escalation_threshold:
            reason = escalation_reason(disagreement, self.escalation_threshold)
            logger.info(f"[Orchestrator] Escalating: {reason}")
            return EscalationOutcome(
                reason=reason,
                proposal_a=visual.proposal,
                proposal_b=architecture.proposal,
                divergent_issues=divergent_issues(visual.proposal, architecture.proposal, disagreement),
                details={**details, "axes": disagreement.worst_axes()},
                cached_intelligence=cache
            )

        logger.info(f"[Orchestrator] Proposals reconciled (disagreement {disagreement.score:.2f})")
        return CompleteOutcome(
            architecture=merge_proposals(visual.proposal, architecture.proposal, disagreement),
            details=details,
            cached_intelligence=cache
        )

    def _build_cache(
        self,
        concept: Dict[str, Any],
        layout_manifest: Dict[str, Any],
        visual: AgentResult,
        architecture: AgentResult
    ) -> CachedIntelligence:
        return CachedIntelligence(
            fingerprint=concept_fingerprint(concept, layout_manifest),
            visual=visual.proposal,
            architecture=architecture.proposal
        )


# Create singleton instance
planning_orchestrator = PlanningOrchestrator()
