from pydantic_settings import BaseSettings
from typing import List, Any
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "DualPlan AI"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Claude AI
    # ==========================================
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = ""  # Empty means use default Anthropic URL
    CLAUDE_VISUAL_MODEL: str = "claude-3-5-haiku-20241022"
    CLAUDE_ARCHITECTURE_MODEL: str = "claude-sonnet-4-20250514"
    CLAUDE_MAX_TOKENS: int = 4096
    CLAUDE_TEMPERATURE: float = 0.4
    CLAUDE_REQUEST_TIMEOUT: int = 300  # seconds, per HTTP request
    CLAUDE_CONNECT_TIMEOUT: int = 60  # seconds
    CLAUDE_MAX_RETRIES: int = 2
    CLAUDE_RETRY_BASE_DELAY: float = 2.0  # seconds
    CLAUDE_RETRY_MAX_DELAY: float = 30.0  # seconds

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # ==========================================
    # Session Storage Settings
    # ==========================================
    SESSION_STORE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_SECONDS: int = 3600  # 1 hour
    SESSION_CLEANUP_INTERVAL: int = 300  # 5 minutes

    # ==========================================
    # Planning Pipeline
    # ==========================================
    PLANNING_AGENT_TIMEOUT_SECONDS: float = 240.0  # per specialist call
    PLANNING_AGENT_MAX_TOKENS: int = 4096
    PLANNING_RUN_DEADLINE_SECONDS: float = 540.0  # whole orchestrator run
    HOST_WALL_CLOCK_LIMIT_SECONDS: float = 600.0  # host kills the process after this
    PLANNING_SAFETY_MARGIN_SECONDS: float = 30.0  # reserved for reconciliation + emission
    PLANNING_ESCALATION_THRESHOLD: float = 0.30
    PLANNING_EVENT_QUEUE_SIZE: int = 64

    # ==========================================
    # SSE
    # ==========================================
    SSE_KEEPALIVE_INTERVAL: float = 15.0  # seconds of silence before a keepalive comment

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def planning_budget_errors(self) -> List[str]:
        """
        Check that internal planning budgets fit inside the host wall-clock limit.

        A per-agent timeout that is not strictly smaller than the run deadline, or a
        run deadline that eats into the safety margin, lets a wedged agent call starve
        the run before any terminal event is sent.
        """
        errors = []
        if self.PLANNING_AGENT_TIMEOUT_SECONDS <= 0:
            errors.append("PLANNING_AGENT_TIMEOUT_SECONDS must be positive")
        if self.PLANNING_AGENT_TIMEOUT_SECONDS >= self.PLANNING_RUN_DEADLINE_SECONDS:
            errors.append(
                "PLANNING_AGENT_TIMEOUT_SECONDS must be smaller than PLANNING_RUN_DEADLINE_SECONDS"
            )
        ceiling = self.HOST_WALL_CLOCK_LIMIT_SECONDS - self.PLANNING_SAFETY_MARGIN_SECONDS
        if self.PLANNING_RUN_DEADLINE_SECONDS > ceiling:
            errors.append(
                f"PLANNING_RUN_DEADLINE_SECONDS ({self.PLANNING_RUN_DEADLINE_SECONDS}s) exceeds "
                f"host limit minus safety margin ({ceiling}s)"
            )
        if not 0 < self.PLANNING_ESCALATION_THRESHOLD <= 1:
            errors.append("PLANNING_ESCALATION_THRESHOLD must be in (0, 1]")
        return errors


# Create settings instance
settings = Settings()
