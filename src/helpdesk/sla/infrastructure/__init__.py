"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA policies and breach detection:
- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy and in-memory data access
- External: Background scan scheduling
"""

from helpdesk.sla.infrastructure.models import SLAPolicyModel, TicketModel
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
)
from helpdesk.sla.infrastructure.memory import (
    InMemorySLAPolicyRepository,
    InMemoryTicketRepository,
)
from helpdesk.sla.infrastructure.external import SLABreachScheduler, run_breach_scan

__all__ = [
    "SLAPolicyModel",
    "TicketModel",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyTicketRepository",
    "InMemorySLAPolicyRepository",
    "InMemoryTicketRepository",
    "SLABreachScheduler",
    "run_breach_scan",
]
