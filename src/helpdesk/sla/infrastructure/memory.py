"""
SLA In-Memory Repositories
===========================

Process-local implementations of the repository interfaces.

Used by tests and by single-process deployments configured with
``STORAGE_BACKEND=memory``. Each write takes the store's lock, so the
uniqueness check and the write happen atomically.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from helpdesk.config import TicketPriority
from helpdesk.core import ConflictException, RepositoryException
from helpdesk.sla.application import ISLAPolicyRepository, ITicketRepository, SLAPolicyQueryDTO
from helpdesk.sla.domain import SLAPolicy, Ticket


def _conflict(priority: TicketPriority, details: Dict[str, Any]) -> ConflictException:
    return ConflictException(
        f"An active SLA policy already exists for {priority.value} priority",
        {**details, "priority": priority.value}
    )


class InMemorySLAPolicyRepository(ISLAPolicyRepository):
    """Dict-backed policy store. Returns copies, never the stored objects."""

    def __init__(self):
        self._policies: Dict[str, SLAPolicy] = {}
        self._lock = asyncio.Lock()

    def _conflicting_policy(
        self,
        owner_id: str,
        priority: TicketPriority,
        exclude_id: Optional[str] = None
    ) -> Optional[SLAPolicy]:
        for policy in self._policies.values():
            if (policy.owner_id == owner_id and policy.priority == priority
                    and policy.is_active and policy.id != exclude_id):
                return policy
        return None

    async def find_active_policies(self, owner_id: str) -> List[SLAPolicy]:
        return [
            replace(policy) for policy in self._policies.values()
            if policy.owner_id == owner_id and policy.is_active
        ]

    async def find_policy_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        policy = self._policies.get(policy_id)
        return replace(policy) if policy else None

    async def find_policy_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority
    ) -> Optional[SLAPolicy]:
        policy = self._conflicting_policy(owner_id, priority)
        return replace(policy) if policy else None

    async def list_policies(
        self,
        owner_id: str,
        query: SLAPolicyQueryDTO
    ) -> Tuple[List[SLAPolicy], int]:
        search = query.search.lower() if query.search else None

        def matches(policy: SLAPolicy) -> bool:
            if policy.owner_id != owner_id:
                return False
            if query.priority is not None and policy.priority != query.priority:
                return False
            if query.is_active is not None and policy.is_active != query.is_active:
                return False
            if search:
                haystack = f"{policy.name}\n{policy.description or ''}".lower()
                return search in haystack
            return True

        matched = [policy for policy in self._policies.values() if matches(policy)]
        # Newest first, name as the tie-breaker
        matched.sort(key=lambda policy: policy.name)
        matched.sort(key=lambda policy: policy.created_at, reverse=True)

        page = matched[query.offset:query.offset + query.limit]
        return [replace(policy) for policy in page], len(matched)

    async def create_policy(self, policy: SLAPolicy) -> SLAPolicy:
        async with self._lock:
            if policy.is_active and self._conflicting_policy(policy.owner_id, policy.priority):
                raise _conflict(policy.priority, {"owner_id": policy.owner_id})

            stored = replace(policy, id=str(uuid4()))
            self._policies[stored.id] = stored
            return replace(stored)

    async def update_policy(
        self,
        policy_id: str,
        changes: Dict[str, Any]
    ) -> Optional[SLAPolicy]:
        async with self._lock:
            existing = self._policies.get(policy_id)
            if existing is None:
                return None

            candidate = replace(existing, **changes, updated_at=datetime.now(timezone.utc))
            if candidate.is_active and self._conflicting_policy(
                candidate.owner_id, candidate.priority, exclude_id=policy_id
            ):
                raise _conflict(candidate.priority, {"policy_id": policy_id})

            self._policies[policy_id] = candidate
            return replace(candidate)

    async def delete_policy(self, policy_id: str) -> None:
        async with self._lock:
            self._policies.pop(policy_id, None)

    async def active_policy_exists_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority,
        exclude_id: Optional[str] = None
    ) -> bool:
        return self._conflicting_policy(owner_id, priority, exclude_id) is not None

    async def find_owner_ids_with_active_policies(self) -> List[str]:
        return sorted({policy.owner_id for policy in self._policies.values() if policy.is_active})


class InMemoryTicketRepository(ITicketRepository):
    """
    Dict-backed stand-in for the ticketing subsystem.

    ``add`` and ``get`` exist for seeding and inspection; the SLA engine
    only uses the interface methods.
    """

    def __init__(self, tickets: Optional[List[Ticket]] = None):
        self._tickets: Dict[str, Ticket] = {}
        for ticket in tickets or []:
            self.add(ticket)

    def add(self, ticket: Ticket) -> Ticket:
        self._tickets[ticket.id] = replace(ticket)
        return ticket

    def get(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def find_open_unbreached_tickets(self, owner_id: str) -> List[Ticket]:
        tickets = [
            replace(ticket) for ticket in self._tickets.values()
            if ticket.owner_id == owner_id and ticket.is_pending_sla_check
        ]
        tickets.sort(key=lambda ticket: ticket.created_at)
        return tickets

    async def mark_ticket_breached(self, ticket_id: str) -> None:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise RepositoryException(f"Ticket {ticket_id} not found")
        ticket.sla_breached = True
