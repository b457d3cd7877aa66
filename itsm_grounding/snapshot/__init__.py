"""
Snapshot Module
===============

Bounded Context for the local mirror of the remote ITSM platform.

Responsibilities:
- Page through every entity type with dedup and hard page caps
- Probe the keyspace letter by letter when paging returns too little
- Isolate failures per section so one bad endpoint never blocks a build
- Persist the snapshot under a schema version and a freshness window
- Record last-sync marks and prefetch request offering fieldsets
"""

__version__ = "1.0.0"
