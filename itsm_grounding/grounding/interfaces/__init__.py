"""
Grounding Interfaces Layer
==========================

Interface adapters (controllers) for the grounding module.

Contains:
- Controllers: FastAPI route handlers
"""

from itsm_grounding.grounding.interfaces.controllers import grounding_router

__all__ = ["grounding_router"]
