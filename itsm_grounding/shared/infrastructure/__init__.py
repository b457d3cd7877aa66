"""
Shared Infrastructure
=====================

Low-level technical concerns shared by every bounded context:
- Structured logging setup
"""
