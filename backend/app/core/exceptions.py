"""
Custom Exceptions for DualPlan AI
=================================

Use these instead of generic Exception to:
1. Make errors more specific and debuggable
2. Enable proper error handling at API layer
3. Provide meaningful error messages to users

Usage:
    from app.core.exceptions import SessionNotFoundError, AgentTimeoutError

    if session is None:
        raise SessionNotFoundError(session_id)
"""

from typing import Optional, Any, Dict


class DualPlanError(Exception):
    """Base exception for all DualPlan errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Planning Session Errors
# ============================================

class SessionNotFoundError(DualPlanError):
    """Planning session absent or expired - restart planning to recover"""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(
            f"Planning session '{session_id}' not found or expired",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id}
        )


class SessionConflictError(DualPlanError):
    """A planning run is already attached to this session"""

    status_code = 409

    def __init__(self, session_id: str):
        super().__init__(
            f"Planning session '{session_id}' is already running",
            code="SESSION_ALREADY_RUNNING",
            details={"session_id": session_id}
        )


class SessionAlreadyExistsError(DualPlanError):
    """Session id collision on create - ids must be unique caller-generated tokens"""

    status_code = 409

    def __init__(self, session_id: str):
        super().__init__(
            f"Planning session '{session_id}' already exists",
            code="SESSION_EXISTS",
            details={"session_id": session_id}
        )


# ============================================
# AI/Claude Errors
# ============================================

class AIServiceError(DualPlanError):
    """AI service (Claude) error"""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, code="AI_SERVICE_ERROR")


class AgentTimeoutError(AIServiceError):
    """A specialist agent did not answer within its budget"""

    def __init__(self, agent: str, timeout_seconds: float):
        super().__init__(f"{agent} agent timed out after {timeout_seconds:g}s")
        self.code = "AGENT_TIMEOUT"
        self.details = {"agent": agent, "timeout_seconds": timeout_seconds}


class AIResponseParseError(AIServiceError):
    """Failed to parse AI response"""

    def __init__(self, message: str = "Failed to parse AI response"):
        super().__init__(message)
        self.code = "AI_PARSE_ERROR"


class PlanningDeadlineError(DualPlanError):
    """The whole planning run exceeded its hard deadline"""

    status_code = 504

    def __init__(self, deadline_seconds: float):
        super().__init__(
            f"Planning pipeline timed out after {deadline_seconds:g}s",
            code="PLANNING_DEADLINE_EXCEEDED",
            details={"deadline_seconds": deadline_seconds}
        )


# ============================================
# Storage Errors
# ============================================

class StorageError(DualPlanError):
    """Session storage operation failed"""

    def __init__(self, message: str):
        super().__init__(message, code="STORAGE_ERROR")


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: DualPlanError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
