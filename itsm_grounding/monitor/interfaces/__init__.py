"""
Monitor Interfaces Layer
========================

Interface adapters (controllers) for the monitor module.

Contains:
- Controllers: FastAPI route handlers
"""

from itsm_grounding.monitor.interfaces.controllers import monitor_router

__all__ = ["monitor_router"]
