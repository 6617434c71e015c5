# Pydantic schemas
from app.schemas.planning import (
    PlanningStartRequest,
    PlanningStartResponse,
    PlanningEvent,
    PlanningEventData,
)
