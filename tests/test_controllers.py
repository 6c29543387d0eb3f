from __future__ import annotations

import logging
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from conftest import OWNER, OTHER_OWNER, fixed_clock, make_ticket
from helpdesk.config import Settings
from helpdesk.main import create_app
from helpdesk.sla.infrastructure import InMemorySLAPolicyRepository, InMemoryTicketRepository

HEADERS = {"X-Owner-Id": OWNER}
HIGH_POLICY = {
    "name": "High priority",
    "priority": "HIGH",
    "first_response_minutes": 30,
    "resolution_minutes": 240,
}


def _settings() -> Settings:
    return Settings(
        environment="development",
        storage_backend="memory",
        sla_scan_interval_seconds=0,
    )


@pytest.fixture
def tickets() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def client(tickets) -> Iterator[TestClient]:
    app = create_app(
        settings=_settings(),
        policy_repository=InMemorySLAPolicyRepository(),
        ticket_repository=tickets,
        clock=fixed_clock,
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def _create(client: TestClient, payload=None, headers=None) -> dict:
    response = client.post("/sla-policies", json=payload or HIGH_POLICY, headers=headers or HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_missing_owner_header_is_unauthorized(client) -> None:
    response = client.get("/sla-policies", headers={"X-Correlation-ID": "corr-401"})

    assert response.status_code == 401
    assert response.json() == {
        "detail": "X-Owner-Id header is required",
        "error": "HTTPException",
        "correlation_id": "corr-401",
    }
    assert client.get("/sla-policies", headers={"X-Owner-Id": "  "}).status_code == 401


class _RecordingHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_request_log_line_carries_correlation_id(client) -> None:
    recorder = _RecordingHandler()
    middleware_logger = logging.getLogger("helpdesk.shared.api.middleware")
    previous_level = middleware_logger.level
    middleware_logger.addHandler(recorder)
    middleware_logger.setLevel(logging.INFO)
    try:
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    finally:
        middleware_logger.removeHandler(recorder)
        middleware_logger.setLevel(previous_level)

    assert response.headers["X-Correlation-ID"] == "abc-123"
    completed = [record for record in recorder.records if record.getMessage() == "Request completed"]
    assert len(completed) == 1
    assert completed[0].correlation_id == "abc-123"


def test_create_and_get_policy(client) -> None:
    created = _create(client)

    assert created["is_active"] is True
    assert created["owner_id"] == OWNER

    response = client.get(f"/sla-policies/{created['id']}", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["name"] == "High priority"


def test_duplicate_active_priority_is_bad_request(client) -> None:
    _create(client)

    response = client.post("/sla-policies", json=HIGH_POLICY, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["error"] == "ConflictException"
    assert _create(client, headers={"X-Owner-Id": OTHER_OWNER})["owner_id"] == OTHER_OWNER


def test_invalid_thresholds_are_bad_request(client) -> None:
    payload = dict(HIGH_POLICY, first_response_minutes=60, resolution_minutes=30)

    response = client.post("/sla-policies", json=payload, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "First response time must be less than resolution time"


def test_malformed_body_is_bad_request(client) -> None:
    response = client.post("/sla-policies", json={"name": "No priority"}, headers=HEADERS)

    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)


def test_foreign_policy_is_not_found(client) -> None:
    created = _create(client)

    response = client.get(f"/sla-policies/{created['id']}", headers={"X-Owner-Id": OTHER_OWNER})

    assert response.status_code == 404


def test_patch_toggle_and_delete(client) -> None:
    created = _create(client)
    policy_url = f"/sla-policies/{created['id']}"

    patched = client.patch(policy_url, json={"resolution_minutes": 480}, headers=HEADERS)
    assert patched.status_code == 200
    assert patched.json()["resolution_minutes"] == 480

    toggled = client.post(f"{policy_url}/toggle-active", headers=HEADERS)
    assert toggled.status_code == 200
    assert toggled.json()["is_active"] is False

    assert client.delete(policy_url, headers=HEADERS).status_code == 204
    assert client.get(policy_url, headers=HEADERS).status_code == 404


def test_reactivation_conflict_is_bad_request(client) -> None:
    original = _create(client)
    client.post(f"/sla-policies/{original['id']}/toggle-active", headers=HEADERS)
    _create(client, payload=dict(HIGH_POLICY, name="Replacement"))

    response = client.post(f"/sla-policies/{original['id']}/toggle-active", headers=HEADERS)

    assert response.status_code == 400


def test_list_policies_with_pagination(client) -> None:
    for priority in ("LOW", "MEDIUM", "HIGH"):
        _create(client, payload=dict(HIGH_POLICY, priority=priority, name=f"{priority} policy"))

    response = client.get("/sla-policies", params={"limit": 2, "page": 1}, headers=HEADERS)

    body = response.json()
    assert response.status_code == 200
    assert len(body["items"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    assert client.get("/sla-policies", params={"limit": 101}, headers=HEADERS).status_code == 400


def test_check_breaches_route_is_not_shadowed_by_policy_id(client, tickets) -> None:
    _create(client)
    ticket = tickets.add(make_ticket(ticket_number="TKT-0045", age_minutes=45))

    response = client.get("/sla-policies/check-breaches", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["checked_count"] == 1
    assert body["errors"] == []
    assert body["breaches"][0]["ticket_id"] == ticket.id
    assert body["breaches"][0]["breach_type"] == "first_response"
    assert body["breaches"][0]["expected_minutes"] == 30
    assert body["breaches"][0]["actual_minutes"] == 45
    assert tickets.get(ticket.id).sla_breached is True

    again = client.get("/sla-policies/check-breaches", headers=HEADERS).json()
    assert again["breaches"] == []


def test_unexpected_error_is_internal_server_error() -> None:
    class _ExplodingTickets(InMemoryTicketRepository):
        async def find_open_unbreached_tickets(self, owner_id: str):
            raise RuntimeError("boom")

    app = create_app(
        settings=_settings(),
        policy_repository=InMemorySLAPolicyRepository(),
        ticket_repository=_ExplodingTickets(),
    )
    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/sla-policies/check-breaches", headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"


def test_health_reports_disabled_scheduler(client) -> None:
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["checks"]["sla_scheduler"] == "disabled"
    assert body["checks"]["storage_backend"] == "memory"
