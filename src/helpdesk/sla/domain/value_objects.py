"""
SLA Value Objects
==================

Immutable value objects and pure calculations for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from helpdesk.config import BreachType
from helpdesk.core import ValidationException
from helpdesk.sla.domain.entities import BreachResult, SLAPolicy, Ticket

_ONE_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True)
class SLAThresholds:
    """
    The pair of SLA targets a policy carries, in minutes.

    Both must be positive and the first response must be due strictly
    before resolution.
    """
    first_response_minutes: int
    resolution_minutes: int

    def validate(self) -> "SLAThresholds":
        """
        Check the thresholds, in a fixed order.

        Raises:
            ValidationException: On the first rule that does not hold
        """
        if self.first_response_minutes <= 0:
            raise ValidationException(
                "First response time must be greater than 0",
                {"first_response_minutes": self.first_response_minutes}
            )

        if self.resolution_minutes <= 0:
            raise ValidationException(
                "Resolution time must be greater than 0",
                {"resolution_minutes": self.resolution_minutes}
            )

        if self.first_response_minutes >= self.resolution_minutes:
            raise ValidationException(
                "First response time must be less than resolution time",
                {
                    "first_response_minutes": self.first_response_minutes,
                    "resolution_minutes": self.resolution_minutes,
                }
            )

        return self


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all breach classification logic in one place.
    """

    @staticmethod
    def elapsed_minutes(created_at: datetime, now: datetime) -> int:
        """
        Whole minutes between ticket creation and ``now``.

        Truncated, never rounded, so a threshold is only crossed once the
        full minute has elapsed.
        """
        return (now - created_at) // _ONE_MINUTE

    @staticmethod
    def classify(
        ticket: Ticket,
        policy: SLAPolicy,
        now: datetime
    ) -> Optional[BreachResult]:
        """
        Decide whether a ticket breaches its policy at ``now``.

        Both clocks run from ticket creation. The first-response check wins
        when both are overdue, so a ticket yields at most one breach.

        Args:
            ticket: Open, not yet flagged ticket
            policy: Active policy for the ticket's priority
            now: Scan timestamp

        Returns:
            BreachResult, or None when neither threshold is exceeded
        """
        elapsed = SLACalculator.elapsed_minutes(ticket.created_at, now)

        if ticket.first_response_at is None and elapsed > policy.first_response_minutes:
            breach_type = BreachType.FIRST_RESPONSE
            expected = policy.first_response_minutes
        elif ticket.resolved_at is None and elapsed > policy.resolution_minutes:
            breach_type = BreachType.RESOLUTION
            expected = policy.resolution_minutes
        else:
            return None

        return BreachResult(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            policy_name=policy.name,
            breach_type=breach_type,
            expected_minutes=expected,
            actual_minutes=elapsed,
            breached_at=now
        )
