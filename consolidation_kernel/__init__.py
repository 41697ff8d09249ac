"""
Consolidation Kernel

Multi-entity double-entry ledger and the persistence layer for group
consolidation:
- Journal entry lifecycle with approval and atomic, numbered posting
- Per-company sequence allocation under concurrency
- Exchange rates, fiscal periods, consolidation groups, elimination rules
- Structured logging and a typed exception hierarchy
"""

__version__ = "0.1.0"
