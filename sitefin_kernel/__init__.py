"""
sitefin kernel -- financial consistency engine for construction projects.

Domain types, money helpers, the Store collaborator and the repositories
the services are built on:
- Decimal-only money with explicit rounding
- Timestamps normalized to aware UTC at the storage boundary
- Whole-collection writes serialized per collection
"""

__version__ = "0.1.0"
