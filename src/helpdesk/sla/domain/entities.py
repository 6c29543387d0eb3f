"""
SLA Domain Entities
====================

Pure Python domain entities for SLA policies and breach detection.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from helpdesk.config import (
    BreachType, TicketPriority, TicketStatus, TERMINAL_TICKET_STATUSES
)


@dataclass
class SLAPolicy:
    """
    SLA policy entity.

    Defines the first-response and resolution targets, in minutes, for one
    ticket priority of one owner. At most one policy per (owner, priority)
    may be active at a time.
    """

    id: Optional[str]
    owner_id: str
    name: str
    priority: TicketPriority
    first_response_minutes: int
    resolution_minutes: int

    description: Optional[str] = None
    business_hours_only: bool = False
    escalation_email: Optional[str] = None
    is_active: bool = True

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def belongs_to(self, owner_id: str) -> bool:
        """Check whether the policy is in the given owner's scope."""
        return self.owner_id == owner_id


@dataclass
class Ticket:
    """
    Ticket as seen by the SLA engine.

    Owned by the ticketing subsystem; the engine only ever writes
    ``sla_breached``.
    """

    id: str
    ticket_number: str
    owner_id: str
    priority: TicketPriority
    status: TicketStatus
    created_at: datetime

    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    sla_breached: bool = False

    @property
    def is_open(self) -> bool:
        """Check if ticket is still open."""
        return self.status not in TERMINAL_TICKET_STATUSES

    @property
    def is_pending_sla_check(self) -> bool:
        """Open and not yet flagged: the only tickets a scan looks at."""
        return self.is_open and not self.sla_breached


@dataclass(frozen=True)
class BreachResult:
    """A newly detected SLA breach. Derived per scan, never persisted."""

    ticket_id: str
    ticket_number: str
    policy_name: str
    breach_type: BreachType
    expected_minutes: int
    actual_minutes: int
    breached_at: datetime

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "ticket_id": self.ticket_id,
            "ticket_number": self.ticket_number,
            "policy_name": self.policy_name,
            "breach_type": self.breach_type.value,
            "expected_minutes": self.expected_minutes,
            "actual_minutes": self.actual_minutes,
            "breached_at": self.breached_at.isoformat(),
        }


@dataclass
class BreachCheckResult:
    """
    Outcome of one breach scan for one owner.

    Aggregates the breaches that were detected and persisted together with
    the per-ticket failures that were collected instead of raised.
    """

    breaches: List[BreachResult] = field(default_factory=list)
    checked_count: int = 0
    errors: List[str] = field(default_factory=list)

    def record_breach(self, breach: BreachResult) -> None:
        self.breaches.append(breach)

    def record_error(self, ticket_number: str, error: Exception) -> None:
        message = str(error) or type(error).__name__
        self.errors.append(f"Ticket {ticket_number}: {message}")

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "breaches": [breach.to_dict() for breach in self.breaches],
            "checked_count": self.checked_count,
            "errors": list(self.errors),
        }
