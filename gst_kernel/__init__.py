"""
GST Kernel - shared foundations for the reverse-charge engine.

Provides:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clock abstraction
- Decimal-only tax-head value objects and rupee rounding
- SQLAlchemy declarative base and engine/session management
"""

__version__ = "0.1.0"
