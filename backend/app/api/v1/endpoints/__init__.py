# API endpoints
from . import planning

__all__ = ["planning"]
