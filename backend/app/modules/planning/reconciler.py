"""
Proposal Reconciler

Compares the two specialist proposals on four axes, scores the weighted
disagreement, and either merges them or explains why they cannot be merged.
Every axis distance is in [0, 1]; the weights sum to 1.0, so the score is too.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from app.modules.planning.models import Proposal


AXIS_WEIGHTS: Dict[str, float] = {
    "data_model": 0.35,
    "auth": 0.35,
    "integrations": 0.20,
    "routing": 0.10,
}

AXIS_LABELS: Dict[str, str] = {
    "data_model": "data model",
    "auth": "authentication",
    "integrations": "integrations",
    "routing": "routing",
}


def _key(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum() or ch in "/{}:")


def jaccard_distance(left: Iterable[str], right: Iterable[str]) -> float:
    """1 - |A∩B| / |A∪B|; two empty sets are identical"""
    a = {_key(v) for v in left if v}
    b = {_key(v) for v in right if v}
    union = a | b
    if not union:
        return 0.0
    return 1.0 - len(a & b) / len(union)


def _normalize_route(route: str) -> str:
    # "GET /Users/" and "/users" describe the same page
    parts = route.split()
    path = parts[-1] if parts else route
    return path.rstrip("/").lower() or "/"


def data_model_distance(visual: Proposal, architecture: Proposal) -> float:
    left = {_key(e["name"]): e for e in visual.data_model}
    right = {_key(e["name"]): e for e in architecture.data_model}

    names = jaccard_distance(left, right)
    shared = set(left) & set(right)
    if shared:
        fields = sum(
            jaccard_distance(left[name]["fields"], right[name]["fields"]) for name in shared
        ) / len(shared)
    else:
        fields = 1.0 if (left or right) else 0.0
    return 0.7 * names + 0.3 * fields


def auth_distance(visual: Proposal, architecture: Proposal) -> float:
    a, b = visual.auth, architecture.auth
    if a["required"] != b["required"]:
        return 1.0
    if not a["required"]:
        return 0.0

    provider = 0.0 if _key(a["provider"]) == _key(b["provider"]) else 1.0
    strategy = 0.0 if _key(a["strategy"]) == _key(b["strategy"]) else 1.0
    return 0.5 * provider + 0.3 * strategy + 0.2 * jaccard_distance(a["flows"], b["flows"])


def integrations_distance(visual: Proposal, architecture: Proposal) -> float:
    return jaccard_distance(visual.integrations, architecture.integrations)


def routing_distance(visual: Proposal, architecture: Proposal) -> float:
    return jaccard_distance(
        (_normalize_route(r) for r in visual.routing),
        (_normalize_route(r) for r in architecture.routing),
    )


_AXIS_FUNCTIONS = {
    "data_model": data_model_distance,
    "auth": auth_distance,
    "integrations": integrations_distance,
    "routing": routing_distance,
}


@dataclass
class Disagreement:
    """Per-axis distances and the weighted total"""
    axes: Dict[str, float] = field(default_factory=dict)
    score: float = 0.0

    def contributions(self) -> Dict[str, float]:
        return {axis: AXIS_WEIGHTS[axis] * value for axis, value in self.axes.items()}

    def worst_axes(self) -> List[str]:
        """Axes contributing at least half as much as the worst one"""
        contributions = self.contributions()
        top = max(contributions.values(), default=0.0)
        if top <= 0:
            return []
        ranked = sorted(contributions, key=contributions.get, reverse=True)
        return [axis for axis in ranked if contributions[axis] >= top / 2]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 4),
            "axes": {axis: round(value, 4) for axis, value in self.axes.items()},
        }


def score_disagreement(visual: Proposal, architecture: Proposal) -> Disagreement:
    axes = {}
    for axis, distance in _AXIS_FUNCTIONS.items():
        axes[axis] = min(1.0, max(0.0, distance(visual, architecture)))
    score = sum(AXIS_WEIGHTS[axis] * value for axis, value in axes.items())
    return Disagreement(axes=axes, score=min(1.0, score))


def escalation_reason(disagreement: Disagreement, threshold: float) -> str:
    labels = [AXIS_LABELS[axis] for axis in disagreement.worst_axes()]
    if not labels:
        labels = ["overall structure"]
    if len(labels) == 1:
        named = labels[0]
    else:
        named = ", ".join(labels[:-1]) + f" and {labels[-1]}"
    return (
        f"Specialists disagree on {named} "
        f"(disagreement {disagreement.score:.2f} >= threshold {threshold:.2f})"
    )


def merge_proposals(
    visual: Proposal,
    architecture: Proposal,
    disagreement: Disagreement
) -> Dict[str, Any]:
    """Structure from the architecture specialist, presentation from the visual one"""
    return {
        "data_model": architecture.data_model,
        "auth": architecture.auth,
        "integrations": architecture.integrations,
        "routing": architecture.routing,
        "tech_stack": architecture.tech_stack,
        "presentation": visual.presentation or architecture.presentation,
        "notes": [n for n in (architecture.notes, visual.notes) if n],
        "verification": "reconciled",
        "reconciliation": {
            **disagreement.to_dict(),
            "structure_source": architecture.source.value,
            "presentation_source": visual.source.value,
        },
    }


def single_source_plan(proposal: Proposal, failure: str) -> Dict[str, Any]:
    """Plan from the one surviving specialist; nothing cross-checked it"""
    return {
        "data_model": proposal.data_model,
        "auth": proposal.auth,
        "integrations": proposal.integrations,
        "routing": proposal.routing,
        "tech_stack": proposal.tech_stack,
        "presentation": proposal.presentation,
        "notes": [proposal.notes] if proposal.notes else [],
        "verification": "unverified",
        "reconciliation": {
            "source": proposal.source.value,
            "missing_specialist_error": failure,
        },
    }


def _stance(proposal: Proposal, axis: str) -> str:
    if axis == "data_model":
        return ", ".join(sorted(e["name"] for e in proposal.data_model)) or "no entities"
    if axis == "auth":
        auth = proposal.auth
        if not auth["required"]:
            return "no authentication"
        stance = " / ".join(v for v in (auth["provider"], auth["strategy"]) if v) or "required"
        if auth["flows"]:
            stance += f" ({', '.join(auth['flows'])})"
        return stance
    if axis == "integrations":
        return ", ".join(sorted(proposal.integrations)) or "none"
    return ", ".join(sorted({_normalize_route(r) for r in proposal.routing})) or "no routes"


def divergent_issues(
    visual: Proposal,
    architecture: Proposal,
    disagreement: Disagreement
) -> List[Dict[str, str]]:
    """Each specialist's stance on every axis where they differ, worst first"""
    contributions = disagreement.contributions()
    axes = sorted(
        (axis for axis, value in disagreement.axes.items() if value > 0),
        key=lambda axis: contributions[axis],
        reverse=True,
    )
    return [
        {
            "topic": AXIS_LABELS[axis],
            "axis": axis,
            "visual_stance": _stance(visual, axis),
            "architecture_stance": _stance(architecture, axis),
        }
        for axis in axes
    ]
