"""
Dual-agent planning data model

- PlanningSession: ephemeral per-request planning state (single-use)
- ProgressEvent: one stage boundary reported by the orchestrator
- Proposal: one specialist's plan, normalised onto the comparison axes
- CachedIntelligence: proposals from an earlier run, reusable for the same input
- PlanningOutcome: CompleteOutcome | EscalationOutcome | ErrorOutcome
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from app.core.exceptions import AIResponseParseError


class SessionStatus(str, Enum):
    """Planning session status - RUNNING doubles as the single-flight lock"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETE, SessionStatus.ERROR)


class AgentKind(str, Enum):
    """The two specialist agents"""
    VISUAL = "visual"
    ARCHITECTURE = "architecture"


# ==================== Session ====================

@dataclass
class PlanningSession:
    """In-flight planning state for one attempt"""
    session_id: str
    concept: Dict[str, Any]
    layout_manifest: Dict[str, Any]
    cached_intelligence: Optional[Dict[str, Any]] = None
    status: SessionStatus = SessionStatus.PENDING
    created_at: float = field(default_factory=time.time)

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "concept": self.concept,
            "layout_manifest": self.layout_manifest,
            "cached_intelligence": self.cached_intelligence,
            "status": self.status.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanningSession":
        return cls(
            session_id=data["session_id"],
            concept=data.get("concept") or {},
            layout_manifest=data.get("layout_manifest") or {},
            cached_intelligence=data.get("cached_intelligence"),
            status=SessionStatus(data.get("status", SessionStatus.PENDING.value)),
            created_at=float(data.get("created_at", time.time())),
        )


# ==================== Progress ====================

@dataclass(frozen=True)
class ProgressEvent:
    """A stage boundary. `stage` is a stable slug; `message` is prose for humans."""
    stage: str
    percent: int
    message: str
    details: Optional[Dict[str, Any]] = None


# ==================== Proposal ====================

def _as_name(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("name") or value.get("path") or value.get("id") or ""
    return str(value).strip()


def _as_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise AIResponseParseError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _normalize_data_model(raw: Any) -> List[Dict[str, Any]]:
    if isinstance(raw, dict):
        raw = raw.get("entities") or raw.get("models") or []
    if not isinstance(raw, list):
        raise AIResponseParseError("data_model must be a list of entities")

    entities = []
    for item in raw:
        name = _as_name(item)
        if not name:
            continue
        fields = _as_list(item.get("fields"), f"data_model.{name}.fields") if isinstance(item, dict) else []
        entities.append({
            "name": name,
            "fields": [n for n in (_as_name(f) for f in fields) if n],
        })
    return entities


def _normalize_auth(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, str):
        raw = {"required": raw.lower() not in ("", "none"), "provider": raw}
    if not isinstance(raw, dict):
        raise AIResponseParseError("auth must be an object")
    provider = str(raw.get("provider") or "").strip()
    flows = _as_list(raw.get("flows"), "auth.flows")
    return {
        "required": bool(raw.get("required", bool(provider))),
        "provider": provider,
        "strategy": str(raw.get("strategy") or "").strip(),
        "flows": [str(f).strip() for f in flows if str(f).strip()],
    }


def _normalize_routes(raw: Any) -> List[str]:
    if isinstance(raw, dict):
        raw = raw.get("routes") or raw.get("pages") or []
    if not isinstance(raw, list):
        raise AIResponseParseError("routing must be a list of routes")

    routes = []
    for item in raw:
        if isinstance(item, dict):
            path = str(item.get("path") or "").strip()
            method = str(item.get("method") or "").strip().upper()
            route = f"{method} {path}".strip() if path else ""
        else:
            route = str(item).strip()
        if route:
            routes.append(route)
    return routes


@dataclass
class Proposal:
    """
    One specialist's structural plan.

    The four comparison axes are data_model, auth, integrations and routing.
    presentation and tech_stack are carried along for merging but never scored.
    """
    source: AgentKind
    data_model: List[Dict[str, Any]]
    auth: Dict[str, Any]
    integrations: List[str]
    routing: List[str]
    presentation: Dict[str, Any] = field(default_factory=dict)
    tech_stack: Dict[str, Any] = field(default_factory=dict)
    notes: str = ""

    REQUIRED_KEYS = ("data_model", "auth", "routing")

    @classmethod
    def from_dict(cls, data: Any, source: Optional[AgentKind] = None) -> "Proposal":
        """
        Normalise raw agent output (or a serialized proposal) into a Proposal.

        Raises:
            AIResponseParseError: the payload is not an object, lacks an axis,
                or has a section of the wrong type
        """
        if not isinstance(data, dict):
            raise AIResponseParseError("Proposal must be a JSON object")

        missing = [key for key in cls.REQUIRED_KEYS if key not in data]
        if missing:
            raise AIResponseParseError(f"Proposal is missing required sections: {', '.join(missing)}")

        try:
            kind = source or AgentKind(data.get("source", AgentKind.ARCHITECTURE.value))
        except ValueError:
            raise AIResponseParseError(f"Unknown proposal source: {data.get('source')!r}")
        integrations = _as_list(data.get("integrations"), "integrations")

        presentation = data.get("presentation") or {}
        tech_stack = data.get("tech_stack") or {}

        return cls(
            source=kind,
            data_model=_normalize_data_model(data["data_model"]),
            auth=_normalize_auth(data["auth"]),
            integrations=[n for n in (_as_name(i) for i in integrations) if n],
            routing=_normalize_routes(data["routing"]),
            presentation=presentation if isinstance(presentation, dict) else {},
            tech_stack=tech_stack if isinstance(tech_stack, dict) else {},
            notes=str(data.get("notes") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "data_model": self.data_model,
            "auth": self.auth,
            "integrations": self.integrations,
            "routing": self.routing,
            "presentation": self.presentation,
            "tech_stack": self.tech_stack,
            "notes": self.notes,
        }


# ==================== Cached Intelligence ====================

def concept_fingerprint(concept: Dict[str, Any], layout_manifest: Dict[str, Any]) -> str:
    """Stable hash of the planning input; cached proposals only apply to the same input"""
    canonical = json.dumps(
        {"concept": concept, "layout_manifest": layout_manifest},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CachedIntelligence:
    """Specialist proposals from an earlier run of the same concept/manifest pair"""
    fingerprint: str
    visual: Optional[Proposal] = None
    architecture: Optional[Proposal] = None
    gathered_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def proposals(self) -> Dict[AgentKind, Proposal]:
        found = {}
        if self.visual is not None:
            found[AgentKind.VISUAL] = self.visual
        if self.architecture is not None:
            found[AgentKind.ARCHITECTURE] = self.architecture
        return found

    def matches(self, concept: Dict[str, Any], layout_manifest: Dict[str, Any]) -> bool:
        return self.fingerprint == concept_fingerprint(concept, layout_manifest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "visual": self.visual.to_dict() if self.visual else None,
            "architecture": self.architecture.to_dict() if self.architecture else None,
            "gathered_at": self.gathered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedIntelligence":
        """
        Raises:
            AIResponseParseError: the payload is not a structurally valid cache
        """
        if not isinstance(data, dict) or not data.get("fingerprint"):
            raise AIResponseParseError("Cached intelligence has no fingerprint")

        visual = data.get("visual")
        architecture = data.get("architecture")
        return cls(
            fingerprint=str(data["fingerprint"]),
            visual=Proposal.from_dict(visual, AgentKind.VISUAL) if visual else None,
            architecture=Proposal.from_dict(architecture, AgentKind.ARCHITECTURE) if architecture else None,
            gathered_at=str(data.get("gathered_at") or ""),
        )


# ==================== Outcome ====================

@dataclass(frozen=True)
class CompleteOutcome:
    """A reconciled (or single-sourced) build plan"""
    architecture: Dict[str, Any]
    details: Dict[str, Any] = field(default_factory=dict)
    cached_intelligence: Optional[CachedIntelligence] = None

    @property
    def single_sourced(self) -> bool:
        return bool(self.details.get("single_sourced"))


@dataclass(frozen=True)
class EscalationOutcome:
    """Irreconcilable proposals handed to a human. proposal_a is visual, proposal_b architecture."""
    reason: str
    proposal_a: Proposal
    proposal_b: Proposal
    divergent_issues: List[Dict[str, str]] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    cached_intelligence: Optional[CachedIntelligence] = None


@dataclass(frozen=True)
class ErrorOutcome:
    """Terminal failure"""
    error: str


PlanningOutcome = Union[CompleteOutcome, EscalationOutcome, ErrorOutcome]
