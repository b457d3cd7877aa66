"""
Snapshot Interfaces Layer
=========================

Interface adapters (controllers) for the snapshot module.

Contains:
- Controllers: FastAPI route handlers
"""

from itsm_grounding.snapshot.interfaces.controllers import snapshot_router

__all__ = ["snapshot_router"]
