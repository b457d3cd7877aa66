"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Local key/value store engine (SQLAlchemy async + aiosqlite)
- Remote ITSM platform HTTP client (httpx)
"""
