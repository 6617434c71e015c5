from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any, Literal


class PlanningStartRequest(BaseModel):
    concept: Dict[str, Any] = Field(..., description="Structured app concept (name, features, technical needs)")
    layout_manifest: Dict[str, Any] = Field(default_factory=dict, description="Visual/structural hints")
    cached_intelligence: Optional[Dict[str, Any]] = Field(
        None, description="cached_intelligence from an earlier complete/escalation event"
    )

    @field_validator("concept")
    @classmethod
    def concept_not_empty(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v:
            raise ValueError("concept must not be empty")
        return v


class PlanningStartResponse(BaseModel):
    session_id: str
    stream_url: str


class PlanningEventData(BaseModel):
    """Payload common to every SSE event; variant fields ride along as extras"""
    stage: str
    progress: int = Field(..., ge=0, le=100)
    message: str

    model_config = {"extra": "allow"}


class PlanningEvent(BaseModel):
    type: Literal["progress", "complete", "escalation", "error"]
    data: PlanningEventData
