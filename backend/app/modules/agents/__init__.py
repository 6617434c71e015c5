"""
Planning specialists for DualPlan AI
"""

from app.modules.agents.base_agent import BaseAgent, AgentContext
from app.modules.agents.visual_agent import visual_agent, VisualSpecialistAgent
from app.modules.agents.architect_agent import architecture_agent, ArchitectureSpecialistAgent

__all__ = [
    # Base classes
    'BaseAgent',
    'AgentContext',

    # Singleton instances
    'visual_agent',
    'architecture_agent',

    # Classes
    'VisualSpecialistAgent',
    'ArchitectureSpecialistAgent',
]
