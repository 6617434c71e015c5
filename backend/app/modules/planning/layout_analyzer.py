"""
Layout Analyzer

Deterministic first pass over the layout manifest. Infers the backend a
frontend implies (data models, API endpoints, feature flags) without calling
any model; both specialists receive the result next to the raw manifest.

Two manifest shapes are understood:

    component tree   {"root": node, "definitions": {name: node}, "detectedFeatures": [...]}
    page list        {"pages": [{"path": "/tasks", "sections": [...], "components": [...]}]}

A node is {"id", "type", "semanticTag", "attributes": {...}, "children": [...]}.
Sections and components may also be plain strings. Anything else is skipped,
so a malformed manifest yields fewer needs rather than an error.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional


AUTH_KEYWORDS = ("login", "signup", "register", "auth", "sign-in", "sign-up", "password", "forgot-password")
SEARCH_KEYWORDS = ("search", "filter", "find", "query", "lookup")
REALTIME_KEYWORDS = ("chat", "message", "notification", "live", "real-time", "realtime", "stream", "feed")
UPLOAD_KEYWORDS = ("upload", "file", "image-upload", "attachment", "drop-zone", "dropzone")
PAGINATION_KEYWORDS = ("pagination", "paginator", "page-nav", "load-more", "infinite-scroll")

DATA_DISPLAY_TYPES = ("list", "container")
DATA_DISPLAY_KEYWORDS = ("table", "list", "grid", "card", "chart", "dashboard", "data", "feed")
FORM_KEYWORDS = ("form", "editor", "create", "edit", "new", "add", "compose")
FORM_ACTIONS = ("submit", "create", "save")
INTERACTIVE_TYPES = ("button", "input")
INTERACTIVE_KEYWORDS = ("select", "checkbox", "radio", "toggle", "switch", "slider", "dropdown")

# Words that name a widget rather than a domain entity
UI_WORDS = {
    "table", "list", "grid", "card", "form", "display", "view", "panel", "modal",
    "dialog", "section", "container", "wrapper", "layout", "header", "footer",
    "sidebar", "nav", "menu", "btn", "button", "input", "field", "editor", "create",
    "edit", "new", "add", "compose", "submit", "chart", "dashboard", "feed", "item",
    "page", "hero",
}

USER_FIELDS = ["id", "email", "password", "name", "avatar", "created_at"]
BASE_FIELDS = ["id", "created_at", "updated_at"]


@dataclass
class InferredModel:
    name: str
    fields: List[str]
    inferred_from: str


@dataclass
class InferredEndpoint:
    method: str
    path: str
    purpose: str


@dataclass
class BackendNeeds:
    """What the layout implies the backend must provide"""
    data_models: List[InferredModel] = field(default_factory=list)
    api_endpoints: List[InferredEndpoint] = field(default_factory=list)
    auth_required: bool = False
    realtime_needed: bool = False
    file_uploads: bool = False
    search_needed: bool = False
    pagination_needed: bool = False
    caching_needed: bool = False
    global_state: List[str] = field(default_factory=list)
    local_state: List[str] = field(default_factory=list)
    state_complexity: str = "simple"

    def has_model(self, name: str) -> bool:
        return any(m.name == name for m in self.data_models)

    def has_endpoint(self, path: str, method: Optional[str] = None) -> bool:
        return any(
            e.path == path and (method is None or e.method == method)
            for e in self.api_endpoints
        )

    def summary(self) -> Dict[str, Any]:
        """Counts and headline flags for progress reporting"""
        return {
            "data_models": len(self.data_models),
            "api_endpoints": len(self.api_endpoints),
            "auth_required": self.auth_required,
            "realtime_needed": self.realtime_needed,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_models": [asdict(m) for m in self.data_models],
            "api_endpoints": [asdict(e) for e in self.api_endpoints],
            "features": {
                "auth_required": self.auth_required,
                "realtime_needed": self.realtime_needed,
                "file_uploads": self.file_uploads,
                "search_needed": self.search_needed,
                "pagination_needed": self.pagination_needed,
                "caching_needed": self.caching_needed,
            },
            "state_management": {
                "global_state": self.global_state,
                "local_state": self.local_state,
                "complexity": self.state_complexity,
            },
        }


# ==================== Manifest traversal ====================

@dataclass
class _Node:
    id: str
    type: str
    semantic: str
    attributes: Dict[str, str]
    children: List["_Node"]

    @property
    def label(self) -> str:
        return self.semantic or self.id

    @property
    def haystack(self) -> str:
        text = self.attributes.get("text", "")
        action = self.attributes.get("action_id", "")
        return f"{self.semantic} {self.type} {text} {action}".lower()


def _attr(attributes: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = attributes.get(key)
        if isinstance(value, (str, int, float)) and str(value).strip():
            return str(value).strip()
    return ""


def _to_node(raw: Any, depth: int = 0) -> Optional[_Node]:
    if isinstance(raw, str):
        return _Node(id=raw, type="container", semantic=raw, attributes={}, children=[]) if raw.strip() else None
    if not isinstance(raw, dict) or depth > 64:
        return None

    attributes = raw.get("attributes") if isinstance(raw.get("attributes"), dict) else {}
    children: List[_Node] = []
    for key in ("children", "sections", "components"):
        items = raw.get(key)
        if isinstance(items, list):
            children.extend(n for n in (_to_node(item, depth + 1) for item in items) if n)

    return _Node(
        id=_attr(raw, "id", "path", "name"),
        type=_attr(raw, "type").lower(),
        semantic=_attr(raw, "semanticTag", "semantic_tag", "name"),
        attributes={
            "text": _attr(attributes, "text", "label"),
            "action_id": _attr(attributes, "actionId", "action_id"),
            "name": _attr(attributes, "name"),
            "placeholder": _attr(attributes, "placeholder"),
        },
        children=children,
    )


def _roots(layout_manifest: Dict[str, Any]) -> List[_Node]:
    raw_roots: List[Any] = []
    if "root" in layout_manifest:
        raw_roots.append(layout_manifest["root"])
    definitions = layout_manifest.get("definitions")
    if isinstance(definitions, dict):
        raw_roots.extend(definitions.values())
    pages = layout_manifest.get("pages")
    if isinstance(pages, list):
        raw_roots.extend(pages)
    return [n for n in (_to_node(r) for r in raw_roots) if n]


def _flatten(roots: Iterable[_Node]) -> List[_Node]:
    nodes: List[_Node] = []
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        nodes.append(node)
        stack.extend(reversed(node.children))
    return nodes


# ==================== Detection helpers ====================

def _matches(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _is_data_display(node: _Node) -> bool:
    return node.type in DATA_DISPLAY_TYPES and _matches(node.semantic.lower(), DATA_DISPLAY_KEYWORDS)


def _is_form(node: _Node) -> bool:
    action = node.attributes["action_id"].lower()
    return _matches(node.semantic.lower(), FORM_KEYWORDS) or _matches(action, FORM_ACTIONS)


def _is_interactive(node: _Node) -> bool:
    return node.type in INTERACTIVE_TYPES or _matches(node.semantic.lower(), INTERACTIVE_KEYWORDS)


def infer_model_name(label: str) -> Optional[str]:
    """Entity name from a widget label: task-list -> Task, projectCard -> Project"""
    words = re.split(r"[-_\s/]+", re.sub(r"([a-z])([A-Z])", r"\1-\2", label))
    entity_words = [w.lower() for w in words if len(w) > 1 and w.lower() not in UI_WORDS]
    if not entity_words:
        return None
    return entity_words[0].capitalize()


def _field_name(text: str) -> str:
    return re.sub(r"\s+", "_", text.strip().lower())


def _infer_fields(node: _Node) -> List[str]:
    fields = list(BASE_FIELDS)
    for child in node.children:
        candidates = [child.attributes["name"], child.attributes["placeholder"]]
        if child.type == "text":
            candidates.append(child.attributes["text"])
        for candidate in candidates:
            name = _field_name(candidate)
            if 1 < len(name) < 30 and name not in fields:
                fields.append(name)
    return fields


def _resource_path(model_name: str) -> str:
    return f"/api/{model_name.lower()}s"


# ==================== Analysis ====================

def analyze_layout(layout_manifest: Optional[Dict[str, Any]]) -> BackendNeeds:
    """Extract backend requirements from a layout manifest; never raises on bad input"""
    needs = BackendNeeds()
    if not isinstance(layout_manifest, dict):
        return needs

    nodes = _flatten(_roots(layout_manifest))
    local_state: List[str] = []

    for node in nodes:
        haystack = node.haystack

        if _matches(haystack, AUTH_KEYWORDS):
            needs.auth_required = True
            if not needs.has_model("User"):
                needs.data_models.append(InferredModel("User", list(USER_FIELDS), node.label))
                needs.api_endpoints.extend([
                    InferredEndpoint("POST", "/api/auth/login", "User authentication"),
                    InferredEndpoint("POST", "/api/auth/register", "User registration"),
                    InferredEndpoint("POST", "/api/auth/logout", "User logout"),
                ])

        if _is_data_display(node):
            model_name = infer_model_name(node.label)
            if model_name and not needs.has_model(model_name):
                needs.data_models.append(InferredModel(model_name, _infer_fields(node), node.label))
                needs.api_endpoints.append(
                    InferredEndpoint("GET", _resource_path(model_name), f"Fetch {model_name} data")
                )

        # Login and signup forms are covered by the auth endpoints
        if _is_form(node) and not _matches(haystack, AUTH_KEYWORDS):
            model_name = infer_model_name(node.label)
            if model_name and not needs.has_endpoint(_resource_path(model_name), "POST"):
                base = _resource_path(model_name)
                needs.api_endpoints.extend([
                    InferredEndpoint("POST", base, f"Create {model_name}"),
                    InferredEndpoint("PUT", f"{base}/{{id}}", f"Update {model_name}"),
                    InferredEndpoint("DELETE", f"{base}/{{id}}", f"Delete {model_name}"),
                ])

        if _matches(haystack, UPLOAD_KEYWORDS):
            needs.file_uploads = True
            if not needs.has_endpoint("/api/upload"):
                needs.api_endpoints.append(InferredEndpoint("POST", "/api/upload", "Handle file uploads"))

        if _matches(haystack, SEARCH_KEYWORDS):
            needs.search_needed = True
            if not needs.has_endpoint("/api/search"):
                needs.api_endpoints.append(InferredEndpoint("GET", "/api/search", "Search functionality"))

        if _matches(haystack, REALTIME_KEYWORDS):
            needs.realtime_needed = True

        if _matches(haystack, PAGINATION_KEYWORDS):
            needs.pagination_needed = True

        if _is_interactive(node):
            state_name = node.attributes["name"] or node.label
            if state_name and state_name not in local_state:
                local_state.append(state_name)

    detected = layout_manifest.get("detectedFeatures") or layout_manifest.get("detected_features")
    if isinstance(detected, list):
        for feature in (str(f).lower() for f in detected):
            needs.auth_required = needs.auth_required or _matches(feature, AUTH_KEYWORDS)
            needs.realtime_needed = needs.realtime_needed or _matches(feature, REALTIME_KEYWORDS)
            needs.search_needed = needs.search_needed or _matches(feature, SEARCH_KEYWORDS)
            needs.file_uploads = needs.file_uploads or _matches(feature, UPLOAD_KEYWORDS)

    if needs.auth_required:
        needs.global_state.extend(["current_user", "is_authenticated"])
    if needs.search_needed:
        needs.global_state.extend(["search_query", "search_results"])
    if needs.realtime_needed:
        needs.global_state.extend(["notifications", "live_data"])

    needs.caching_needed = len(needs.data_models) >= 3 or needs.pagination_needed
    needs.local_state = local_state

    interactive = sum(1 for node in nodes if _is_interactive(node))
    models = len(needs.data_models)
    if interactive > 15 or models > 5:
        needs.state_complexity = "complex"
    elif interactive > 7 or models > 2:
        needs.state_complexity = "moderate"

    return needs
