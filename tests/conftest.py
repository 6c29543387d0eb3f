from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import uuid4

import pytest

from helpdesk.config import TicketPriority, TicketStatus
from helpdesk.sla.application import SLABreachScanner, SLAPolicyCreateDTO, SLAPolicyService
from helpdesk.sla.domain import Ticket
from helpdesk.sla.infrastructure import InMemorySLAPolicyRepository, InMemoryTicketRepository

NOW = dt.datetime(2024, 1, 15, 12, 0, tzinfo=dt.timezone.utc)
OWNER = "owner-a"
OTHER_OWNER = "owner-b"


def fixed_clock() -> dt.datetime:
    return NOW


def minutes_ago(minutes: float) -> dt.datetime:
    return NOW - dt.timedelta(minutes=minutes)


def make_policy_dto(
    priority: TicketPriority = TicketPriority.HIGH,
    first_response_minutes: int = 30,
    resolution_minutes: int = 240,
    name: Optional[str] = None,
    **extra,
) -> SLAPolicyCreateDTO:
    return SLAPolicyCreateDTO(
        name=name or f"{priority.value.title()} policy",
        priority=priority,
        first_response_minutes=first_response_minutes,
        resolution_minutes=resolution_minutes,
        **extra,
    )


def make_ticket(
    ticket_number: str = "TKT-0001",
    age_minutes: float = 0,
    priority: TicketPriority = TicketPriority.HIGH,
    status: TicketStatus = TicketStatus.OPEN,
    owner_id: str = OWNER,
    first_response_at: Optional[dt.datetime] = None,
    resolved_at: Optional[dt.datetime] = None,
    sla_breached: bool = False,
) -> Ticket:
    return Ticket(
        id=str(uuid4()),
        ticket_number=ticket_number,
        owner_id=owner_id,
        priority=priority,
        status=status,
        created_at=minutes_ago(age_minutes),
        first_response_at=first_response_at,
        resolved_at=resolved_at,
        sla_breached=sla_breached,
    )


@pytest.fixture
def policy_repo() -> InMemorySLAPolicyRepository:
    return InMemorySLAPolicyRepository()


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def policy_service(policy_repo) -> SLAPolicyService:
    return SLAPolicyService(policy_repo)


@pytest.fixture
def scanner(policy_repo, ticket_repo) -> SLABreachScanner:
    return SLABreachScanner(policy_repo, ticket_repo, clock=fixed_clock)
