"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (cache, snapshot,
grounding, monitor).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add cache, snapshot or grounding business logic to the shared kernel.
"""

__version__ = "1.0.0"
