"""
VitalCheck Kernel

Shared infrastructure for the vital-status verification batch:
- Injectable clock (deterministic in tests)
- Structured, context-aware logging
- Typed exception hierarchy
- SQLAlchemy declarative base and engine/session plumbing
"""

__version__ = "0.1.0"
