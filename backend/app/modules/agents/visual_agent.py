"""
SPECIALIST A - Visual Agent
Reads the concept through the screens: layout, navigation, components, and the
data and flows those screens imply
"""

from app.core.config import settings
from app.modules.agents.base_agent import BaseAgent


class VisualSpecialistAgent(BaseAgent):
    """
    Visual / UX Specialist

    Its presentation section is what the merged plan keeps; its structural
    sections exist so the reconciler can check them against the architecture
    specialist's.
    """

    PERSONA = """You are the Visual & UX Specialist for DualPlan AI. A second specialist
(code architecture) analyses the same app concept independently; your plans are
compared axis by axis, so state the structure the screens imply even when you
are unsure.

YOUR ROLE:
- Define layout, theme, navigation and the component inventory
- Infer the entities each screen displays or edits
- Infer whether screens sit behind a login and which auth flows appear
- List pages as routes, one per screen in the layout manifest
- Mention integrations only when a screen shows them (payments, maps, email)

INPUT YOU RECEIVE:
1. The app concept (name, audience, features)
2. The layout manifest (pages, sections, components)
3. Backend needs inferred from the layout (models, endpoints, feature flags)
"""

    def __init__(self, model: str = None):
        super().__init__(
            name="VisualSpecialist",
            role="visual and UX specialist",
            model=model or settings.CLAUDE_VISUAL_MODEL
        )

    @property
    def system_prompt(self) -> str:
        return f"{self.PERSONA}\n{self.OUTPUT_CONTRACT}"


# Singleton instance
visual_agent = VisualSpecialistAgent()
