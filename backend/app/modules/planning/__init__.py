"""
Dual-agent planning pipeline
"""

from app.modules.planning.models import (
    AgentKind,
    SessionStatus,
    PlanningSession,
    ProgressEvent,
    Proposal,
    CachedIntelligence,
    CompleteOutcome,
    EscalationOutcome,
    ErrorOutcome,
    PlanningOutcome,
)
from app.modules.planning.gateway import AgentGateway, AgentBudget, AgentResult, agent_gateway
from app.modules.planning.layout_analyzer import BackendNeeds, analyze_layout
from app.modules.planning.orchestrator import PlanningOrchestrator, planning_orchestrator

__all__ = [
    'AgentKind',
    'SessionStatus',
    'PlanningSession',
    'ProgressEvent',
    'Proposal',
    'CachedIntelligence',
    'CompleteOutcome',
    'EscalationOutcome',
    'ErrorOutcome',
    'PlanningOutcome',
    'AgentGateway',
    'AgentBudget',
    'AgentResult',
    'agent_gateway',
    'BackendNeeds',
    'analyze_layout',
    'PlanningOrchestrator',
    'planning_orchestrator',
]
