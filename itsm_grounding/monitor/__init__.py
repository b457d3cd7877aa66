"""
Change Monitor Module
=====================

Bounded Context for background change detection.

Responsibilities:
- Poll explicitly watched records on a fast tier
- Poll the actor's own latest records on a slower tier
- Emit created/updated events to subscribers
- Prune watch entries unchecked for the retention period
- Tie every scheduled job to a handle that cancels it
"""

__version__ = "1.0.0"
