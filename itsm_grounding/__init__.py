"""
ITSM Grounding Service
======================

Keeps a conversational assistant grounded in a remote ITSM platform:
a persistent response cache, a versioned snapshot of the platform's
collections, role-gated context digests, a pattern-based fabrication
detector and tiered change monitoring.
"""

__version__ = "1.0.0"
