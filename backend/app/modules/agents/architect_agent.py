"""
SPECIALIST B - Architecture Agent
Proposes the structural plan: data model, auth, integrations, routing and tech stack
"""

from app.core.config import settings
from app.modules.agents.base_agent import BaseAgent


class ArchitectureSpecialistAgent(BaseAgent):
    """
    Architecture Specialist

    Responsibilities:
    - Design the data model (entities and their fields)
    - Decide whether and how users authenticate
    - Pick the third-party integrations the app needs
    - Lay out routes and API endpoints
    - Choose the technology stack
    """

    PERSONA = """You are the Code Architecture Specialist for DualPlan AI. A second specialist
(visual/UX) analyses the same app concept independently; your plans are compared
axis by axis and merged, so be concrete and decisive.

YOUR ROLE:
- Derive the data model from the concept's features, not from the screens alone
- Decide authentication from who uses the app and what data is private
- Name only integrations the concept actually needs
- Produce routes that cover every page in the layout manifest plus the API surface

INPUT YOU RECEIVE:
1. The app concept (name, audience, features)
2. The layout manifest (pages, sections, components)
3. Backend needs inferred from the layout (models, endpoints, feature flags)
"""

    def __init__(self, model: str = None):
        super().__init__(
            name="ArchitectureSpecialist",
            role="code architecture specialist",
            model=model or settings.CLAUDE_ARCHITECTURE_MODEL
        )

    @property
    def system_prompt(self) -> str:
        return f"{self.PERSONA}\n{self.OUTPUT_CONTRACT}"


# Singleton instance
architecture_agent = ArchitectureSpecialistAgent()
