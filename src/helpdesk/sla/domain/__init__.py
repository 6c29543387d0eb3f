"""
SLA Domain Layer
================

Domain layer for the SLA policy and breach detection module.

Contains:
- Entities: Core business objects (SLAPolicy, Ticket, BreachResult, BreachCheckResult)
- Value Objects: Immutable objects defined by attributes (SLAThresholds)
- Domain Services: Stateless business logic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.entities import (
    SLAPolicy,
    Ticket,
    BreachResult,
    BreachCheckResult,
)
from helpdesk.sla.domain.value_objects import SLACalculator, SLAThresholds

__all__ = [
    # Entities
    "SLAPolicy",
    "Ticket",
    "BreachResult",
    "BreachCheckResult",
    # Value Objects & Services
    "SLACalculator",
    "SLAThresholds",
]
