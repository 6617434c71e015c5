from abc import ABC, abstractmethod
from typing import Dict, Any
from dataclasses import dataclass, field
import json
from app.utils.claude_client import claude_client
from app.utils.response_parser import extract_json
from app.core.logging_config import logger
from app.core.config import settings


@dataclass
class AgentContext:
    """
    Context object handed to a planning specialist.
    Both specialists receive the same concept, layout manifest and layout analysis.
    """
    concept: Dict[str, Any]
    layout_manifest: Dict[str, Any]
    max_tokens: int = 4096
    backend_needs: Dict[str, Any] = field(default_factory=dict)


class BaseAgent(ABC):
    """Base class for planning specialists"""

    # Shared output contract; each specialist prepends its own persona
    OUTPUT_CONTRACT = """YOUR OUTPUT MUST BE VALID JSON:
{
  "data_model": [
    {"name": "User", "fields": ["id", "email", "display_name"]}
  ],
  "auth": {
    "required": true,
    "provider": "email_password",
    "strategy": "jwt",
    "flows": ["signup", "login", "password_reset"]
  },
  "integrations": ["stripe", "sendgrid"],
  "routing": [
    {"method": "GET", "path": "/"},
    {"method": "GET", "path": "/dashboard"}
  ],
  "presentation": {
    "layout": "sidebar",
    "theme": "light",
    "navigation": ["Home", "Dashboard"],
    "components": ["Header", "Sidebar", "DataTable"]
  },
  "tech_stack": {"frontend": "React", "backend": "FastAPI", "database": "PostgreSQL"},
  "notes": "Short rationale for the main decisions"
}

RULES:
- data_model, auth and routing are required
- Entity and integration names are short identifiers, not sentences
- Return ONLY the JSON object, no prose before or after it"""

    def __init__(
        self,
        name: str,
        role: str,
        model: str = "haiku"
    ):
        self.name = name
        self.role = role
        self.model = model
        self.claude = claude_client

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """Persona prompt including the output contract"""
        pass

    async def process(self, context: AgentContext) -> Dict[str, Any]:
        """
        Produce this specialist's raw proposal for the concept.

        Args:
            context: AgentContext with concept, layout manifest and token budget

        Returns:
            The JSON object parsed from the model's reply

        Raises:
            AIResponseParseError: the reply contains no JSON object
            anthropic.APIError / httpx.HTTPError: transport failures after retries
        """
        logger.log_agent_event(self.name, "started", model=self.model)

        response = await self._call_claude(
            system_prompt=self.system_prompt,
            user_prompt=self._build_prompt(context),
            max_tokens=context.max_tokens,
            temperature=settings.CLAUDE_TEMPERATURE
        )

        proposal = extract_json(response)
        logger.log_agent_event(self.name, "completed", response_chars=len(response))
        return proposal

    def _build_prompt(self, context: AgentContext) -> str:
        """Build the user prompt shared by both specialists"""
        prompt_parts = [
            f"APP CONCEPT:\n{json.dumps(context.concept, indent=2, default=str)}\n",
            f"\nLAYOUT MANIFEST:\n{json.dumps(context.layout_manifest, indent=2, default=str)}\n",
        ]
        if context.backend_needs:
            prompt_parts.append(
                "\nBACKEND NEEDS INFERRED FROM THE LAYOUT (a starting point, not a constraint):\n"
                f"{json.dumps(context.backend_needs, indent=2, default=str)}\n"
            )
        prompt_parts += [
            f"\nTASK:\nAs the {self.role}, propose the build plan for this app.",
            "Output valid JSON following the specified format."
        ]
        return "\n".join(prompt_parts)

    async def _call_claude(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.7
    ) -> str:
        """
        Call Claude API with system and user prompts

        Args:
            system_prompt: System prompt for the agent
            user_prompt: User's request/prompt
            max_tokens: Maximum tokens to generate
            temperature: Temperature for generation

        Returns:
            Generated text response from Claude
        """
        try:
            response = await self.claude.generate(
                prompt=user_prompt,
                system_prompt=system_prompt,
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature
            )
            return response.get("content", "")
        except Exception as e:
            logger.error(f"[{self.name}] Claude API error: {e}", exc_info=True)
            raise
