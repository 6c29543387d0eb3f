from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from conftest import NOW, OTHER_OWNER, OWNER, fixed_clock, make_policy_dto, make_ticket, minutes_ago
from helpdesk.config import BreachType, TicketPriority, TicketStatus
from helpdesk.core import RepositoryException
from helpdesk.sla.application import SLABreachScanner
from helpdesk.sla.infrastructure import InMemoryTicketRepository


class _FlakyTicketRepository(InMemoryTicketRepository):
    """Fails to persist the flag for selected tickets."""

    def __init__(self, failing_ids, tickets=None):
        super().__init__(tickets)
        self.failing_ids = set(failing_ids)

    async def mark_ticket_breached(self, ticket_id: str) -> None:
        if ticket_id in self.failing_ids:
            raise RepositoryException("database unavailable")
        await super().mark_ticket_breached(ticket_id)


class _BrokenTicketRepository(InMemoryTicketRepository):
    async def find_open_unbreached_tickets(self, owner_id: str):
        raise RepositoryException("ticket store offline")


def _seed_high_policy(policy_service) -> None:
    asyncio.run(policy_service.create(
        OWNER,
        make_policy_dto(priority=TicketPriority.HIGH, first_response_minutes=30, resolution_minutes=240),
    ))


def test_first_response_breach_is_reported_and_flagged(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket = ticket_repo.add(make_ticket(ticket_number="TKT-0045", age_minutes=45))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.checked_count == 1
    assert result.errors == []
    assert len(result.breaches) == 1
    breach = result.breaches[0]
    assert breach.breach_type == BreachType.FIRST_RESPONSE
    assert breach.expected_minutes == 30
    assert breach.actual_minutes == 45
    assert breach.ticket_id == ticket.id
    assert ticket_repo.get(ticket.id).sla_breached is True


def test_rescan_skips_already_flagged_ticket(policy_service, policy_repo, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket_repo.add(make_ticket(age_minutes=45))
    asyncio.run(scanner.check_breaches(OWNER))

    later = SLABreachScanner(policy_repo, ticket_repo, clock=lambda: NOW + dt.timedelta(minutes=1))
    result = asyncio.run(later.check_breaches(OWNER))

    assert result.breaches == []
    assert result.checked_count == 0


def test_ticket_breaching_both_clocks_is_reported_once(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket_repo.add(make_ticket(age_minutes=600))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert len(result.breaches) == 1
    assert result.breaches[0].breach_type == BreachType.FIRST_RESPONSE


def test_threshold_boundary_is_strict(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    at_limit = ticket_repo.add(make_ticket(ticket_number="TKT-0030", age_minutes=30))
    almost = ticket_repo.add(make_ticket(ticket_number="TKT-0031", age_minutes=30.99))
    over = ticket_repo.add(make_ticket(ticket_number="TKT-0032", age_minutes=31))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert [breach.ticket_number for breach in result.breaches] == ["TKT-0032"]
    assert ticket_repo.get(at_limit.id).sla_breached is False
    assert ticket_repo.get(almost.id).sla_breached is False
    assert ticket_repo.get(over.id).sla_breached is True


def test_resolution_breach_after_timely_response(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket_repo.add(make_ticket(
        age_minutes=250,
        status=TicketStatus.IN_PROGRESS,
        first_response_at=minutes_ago(240),
    ))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.breaches[0].breach_type == BreachType.RESOLUTION
    assert result.breaches[0].expected_minutes == 240
    assert result.breaches[0].actual_minutes == 250


def test_tickets_without_active_policy_are_counted_but_skipped(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    low = ticket_repo.add(make_ticket(priority=TicketPriority.LOW, age_minutes=10_000))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.checked_count == 1
    assert result.breaches == []
    assert result.errors == []
    assert ticket_repo.get(low.id).sla_breached is False


def test_terminal_and_foreign_tickets_are_not_examined(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket_repo.add(make_ticket(ticket_number="TKT-R", age_minutes=500, status=TicketStatus.RESOLVED))
    ticket_repo.add(make_ticket(ticket_number="TKT-C", age_minutes=500, status=TicketStatus.CLOSED))
    ticket_repo.add(make_ticket(ticket_number="TKT-X", age_minutes=500, owner_id=OTHER_OWNER))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.checked_count == 0
    assert result.breaches == []


def test_failed_flag_write_is_collected_and_scan_continues(policy_service, policy_repo) -> None:
    _seed_high_policy(policy_service)
    failing = make_ticket(ticket_number="TKT-FAIL", age_minutes=60)
    healthy = make_ticket(ticket_number="TKT-OK", age_minutes=50)
    ticket_repo = _FlakyTicketRepository([failing.id], [failing, healthy])
    scanner = SLABreachScanner(policy_repo, ticket_repo, clock=fixed_clock)

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.checked_count == 2
    assert [breach.ticket_number for breach in result.breaches] == ["TKT-OK"]
    assert result.errors == ["Ticket TKT-FAIL: database unavailable"]
    assert result.has_errors
    assert ticket_repo.get(failing.id).sla_breached is False
    assert ticket_repo.get(healthy.id).sla_breached is True


def test_ticket_load_failure_propagates(policy_service, policy_repo) -> None:
    _seed_high_policy(policy_service)
    scanner = SLABreachScanner(policy_repo, _BrokenTicketRepository(), clock=fixed_clock)

    with pytest.raises(RepositoryException):
        asyncio.run(scanner.check_breaches(OWNER))


def test_inactive_policy_does_not_classify(policy_service, ticket_repo, scanner) -> None:
    policy = asyncio.run(policy_service.create(OWNER, make_policy_dto()))
    asyncio.run(policy_service.toggle_active(policy.id, OWNER))
    ticket_repo.add(make_ticket(age_minutes=500))

    result = asyncio.run(scanner.check_breaches(OWNER))

    assert result.checked_count == 1
    assert result.breaches == []


def test_result_to_dict_shape(policy_service, ticket_repo, scanner) -> None:
    _seed_high_policy(policy_service)
    ticket_repo.add(make_ticket(ticket_number="TKT-0045", age_minutes=45))

    payload = asyncio.run(scanner.check_breaches(OWNER)).to_dict()

    assert set(payload) == {"breaches", "checked_count", "errors"}
    assert payload["breaches"][0]["ticket_number"] == "TKT-0045"
    assert payload["breaches"][0]["breach_type"] == "first_response"
