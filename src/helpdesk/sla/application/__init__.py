"""
SLA Application Layer
======================

Application layer for the SLA policy and breach detection module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    SLAPolicyQueryDTO,
    SLAPolicyResponse,
    SLAPolicyListResponse,
    PaginationResponse,
    BreachResultResponse,
    BreachCheckResponse,
)
from helpdesk.sla.application.services import (
    SLAPolicyService,
    SLABreachScanner,
    ISLAPolicyRepository,
    ITicketRepository,
    Clock,
    utc_now,
)

__all__ = [
    # DTOs
    "SLAPolicyCreateDTO",
    "SLAPolicyUpdateDTO",
    "SLAPolicyQueryDTO",
    "SLAPolicyResponse",
    "SLAPolicyListResponse",
    "PaginationResponse",
    "BreachResultResponse",
    "BreachCheckResponse",
    # Services
    "SLAPolicyService",
    "SLABreachScanner",
    # Repository Interfaces
    "ISLAPolicyRepository",
    "ITicketRepository",
    # Time source
    "Clock",
    "utc_now",
]
