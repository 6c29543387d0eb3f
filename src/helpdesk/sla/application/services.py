"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: the policy store and the breach scanner are separate
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from helpdesk.config import TicketPriority
from helpdesk.core import ConflictException, ResourceNotFoundException
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application.dto import (
    PaginationResponse,
    SLAPolicyCreateDTO,
    SLAPolicyListResponse,
    SLAPolicyQueryDTO,
    SLAPolicyResponse,
    SLAPolicyUpdateDTO,
)
from helpdesk.sla.domain import (
    BreachCheckResult,
    SLACalculator,
    SLAPolicy,
    SLAThresholds,
    Ticket,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """
    Interface for SLA policy persistence.

    Implementations must make the "one active policy per owner and priority"
    rule atomic: ``create_policy`` and ``update_policy`` raise
    ConflictException when a write would leave two active policies for the
    same (owner, priority), even if the service-level pre-check passed.
    """

    @abstractmethod
    async def find_active_policies(self, owner_id: str) -> List[SLAPolicy]:
        """All active policies of an owner."""

    @abstractmethod
    async def find_policy_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        """Policy by ID, regardless of owner."""

    @abstractmethod
    async def find_policy_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority
    ) -> Optional[SLAPolicy]:
        """The active policy of an owner for one priority."""

    @abstractmethod
    async def list_policies(
        self,
        owner_id: str,
        query: SLAPolicyQueryDTO
    ) -> Tuple[List[SLAPolicy], int]:
        """One page of an owner's policies plus the total match count."""

    @abstractmethod
    async def create_policy(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist a new policy and return it with its ID assigned."""

    @abstractmethod
    async def update_policy(
        self,
        policy_id: str,
        changes: Dict[str, Any]
    ) -> Optional[SLAPolicy]:
        """Apply field changes; None if the policy no longer exists."""

    @abstractmethod
    async def delete_policy(self, policy_id: str) -> None:
        """Delete a policy."""

    @abstractmethod
    async def active_policy_exists_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority,
        exclude_id: Optional[str] = None
    ) -> bool:
        """Check whether another active policy covers the priority."""

    @abstractmethod
    async def find_owner_ids_with_active_policies(self) -> List[str]:
        """Owners that currently have something to scan."""


class ITicketRepository(ABC):
    """Interface for the ticketing subsystem's read/write operations."""

    @abstractmethod
    async def find_open_unbreached_tickets(self, owner_id: str) -> List[Ticket]:
        """Tickets in a non-terminal status that are not flagged yet."""

    @abstractmethod
    async def mark_ticket_breached(self, ticket_id: str) -> None:
        """Set the ticket's breach flag."""


# ========== Application Services ==========

class SLAPolicyService:
    """
    Policy store: CRUD over SLA policies with invariant enforcement.

    Knows nothing about tickets.
    """

    def __init__(self, policy_repository: ISLAPolicyRepository):
        self._policy_repo = policy_repository

    async def create(self, owner_id: str, data: SLAPolicyCreateDTO) -> SLAPolicy:
        """
        Create a policy; it starts active.

        Raises:
            ValidationException: Thresholds are invalid
            ConflictException: An active policy already covers the priority
        """
        SLAThresholds(data.first_response_minutes, data.resolution_minutes).validate()

        if await self._policy_repo.active_policy_exists_for_priority(owner_id, data.priority):
            raise ConflictException(
                f"An active SLA policy already exists for {data.priority.value} priority. "
                "Deactivate it first or update the existing policy.",
                {"priority": data.priority.value}
            )

        policy = await self._policy_repo.create_policy(SLAPolicy(
            id=None,
            owner_id=owner_id,
            name=data.name,
            description=data.description or None,
            priority=data.priority,
            first_response_minutes=data.first_response_minutes,
            resolution_minutes=data.resolution_minutes,
            business_hours_only=data.business_hours_only,
            escalation_email=data.escalation_email or None,
            is_active=True,
        ))

        logger.info(
            "SLA policy created",
            extra={"owner_id": owner_id, "policy_id": policy.id, "priority": policy.priority.value}
        )
        return policy

    async def get(self, policy_id: str, owner_id: str) -> SLAPolicy:
        """
        Fetch one policy in the owner's scope.

        Raises:
            ResourceNotFoundException: Missing, or owned by someone else
        """
        policy = await self._policy_repo.find_policy_by_id(policy_id)
        if policy is None or not policy.belongs_to(owner_id):
            raise ResourceNotFoundException("SLA policy", policy_id)
        return policy

    async def update(
        self,
        policy_id: str,
        owner_id: str,
        data: SLAPolicyUpdateDTO
    ) -> SLAPolicy:
        """
        Partially update a policy.

        Thresholds are validated on the merged view, so changing only one of
        them is still checked against the stored other one.
        """
        existing = await self.get(policy_id, owner_id)
        changes = data.changes()

        SLAThresholds(
            changes.get("first_response_minutes", existing.first_response_minutes),
            changes.get("resolution_minutes", existing.resolution_minutes),
        ).validate()

        new_priority = changes.get("priority")
        if new_priority is not None and new_priority != existing.priority:
            if await self._policy_repo.active_policy_exists_for_priority(
                owner_id, new_priority, exclude_id=policy_id
            ):
                raise ConflictException(
                    f"An active SLA policy already exists for {new_priority.value} priority",
                    {"priority": new_priority.value}
                )

        if not changes:
            return existing

        updated = await self._policy_repo.update_policy(policy_id, changes)
        if updated is None:
            raise ResourceNotFoundException("SLA policy", policy_id)

        logger.info(
            "SLA policy updated",
            extra={"owner_id": owner_id, "policy_id": policy_id, "fields": sorted(changes)}
        )
        return updated

    async def delete(self, policy_id: str, owner_id: str) -> None:
        """Delete a policy in the owner's scope."""
        await self.get(policy_id, owner_id)
        await self._policy_repo.delete_policy(policy_id)
        logger.info("SLA policy deleted", extra={"owner_id": owner_id, "policy_id": policy_id})

    async def get_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority
    ) -> Optional[SLAPolicy]:
        """
        Active policy for a priority.

        None means the priority is not monitored; it is not an error.
        """
        return await self._policy_repo.find_policy_for_priority(owner_id, priority)

    async def toggle_active(self, policy_id: str, owner_id: str) -> SLAPolicy:
        """
        Flip a policy's active flag.

        Reactivation re-checks that no other active policy took over the
        priority in the meantime.
        """
        policy = await self.get(policy_id, owner_id)

        if not policy.is_active:
            if await self._policy_repo.active_policy_exists_for_priority(
                owner_id, policy.priority, exclude_id=policy_id
            ):
                raise ConflictException(
                    "Cannot reactivate: an active SLA policy already exists for "
                    f"{policy.priority.value} priority",
                    {"priority": policy.priority.value}
                )

        updated = await self._policy_repo.update_policy(
            policy_id, {"is_active": not policy.is_active}
        )
        if updated is None:
            raise ResourceNotFoundException("SLA policy", policy_id)

        logger.info(
            "SLA policy toggled",
            extra={"owner_id": owner_id, "policy_id": policy_id, "is_active": updated.is_active}
        )
        return updated

    async def list(self, owner_id: str, query: SLAPolicyQueryDTO) -> SLAPolicyListResponse:
        """List policies with filtering and pagination."""
        items, total = await self._policy_repo.list_policies(owner_id, query)
        return SLAPolicyListResponse(
            items=[SLAPolicyResponse.model_validate(item) for item in items],
            pagination=PaginationResponse.build(query.page, query.limit, total)
        )


class SLABreachScanner:
    """
    Detects newly breached tickets for one owner.

    Meant to be invoked on a schedule, once per owner per interval. Scans
    are idempotent: a flagged ticket is excluded from every later scan.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        ticket_repository: ITicketRepository,
        clock: Optional[Clock] = None
    ):
        self._policy_repo = policy_repository
        self._ticket_repo = ticket_repository
        self._clock = clock or utc_now

    async def check_breaches(self, owner_id: str) -> BreachCheckResult:
        """
        Classify every open, unflagged ticket against its priority's policy.

        Failures loading policies or tickets propagate. Failures on a single
        ticket are collected in ``errors`` and the scan moves on.

        Returns:
            BreachCheckResult with the persisted breaches
        """
        policies = await self._policy_repo.find_active_policies(owner_id)
        tickets = await self._ticket_repo.find_open_unbreached_tickets(owner_id)

        policy_by_priority = {policy.priority: policy for policy in policies}
        now = self._clock()
        result = BreachCheckResult(checked_count=len(tickets))

        for ticket in tickets:
            try:
                policy = policy_by_priority.get(ticket.priority)
                if policy is None:
                    continue

                breach = SLACalculator.classify(ticket, policy, now)
                if breach is None:
                    continue

                await self._ticket_repo.mark_ticket_breached(ticket.id)
                result.record_breach(breach)

                logger.info(
                    "SLA breach detected",
                    extra={
                        "owner_id": owner_id,
                        "ticket_number": ticket.ticket_number,
                        "breach_type": breach.breach_type.value,
                        "expected_minutes": breach.expected_minutes,
                        "actual_minutes": breach.actual_minutes,
                    }
                )
            except Exception as e:
                result.record_error(ticket.ticket_number, e)
                logger.warning(
                    "SLA breach check failed for ticket",
                    extra={
                        "owner_id": owner_id,
                        "ticket_number": ticket.ticket_number,
                        "error": str(e),
                    }
                )

        logger.info(
            "SLA breach scan complete",
            extra={
                "owner_id": owner_id,
                "checked_count": result.checked_count,
                "breach_count": len(result.breaches),
                "error_count": len(result.errors),
            }
        )
        return result
