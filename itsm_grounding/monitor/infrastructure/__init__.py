"""
Monitor Infrastructure Layer
============================

- External: APScheduler poll scheduler
"""

from itsm_grounding.monitor.infrastructure.external import MonitorScheduler

__all__ = ["MonitorScheduler"]
