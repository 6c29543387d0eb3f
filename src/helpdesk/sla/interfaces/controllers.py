"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policy administration and breach checks.

Controllers are thin - they delegate to application services, which are
built once at startup and read from the application state.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status

from helpdesk.config import TicketPriority
from helpdesk.sla.application import (
    BreachCheckResponse,
    SLABreachScanner,
    SLAPolicyCreateDTO,
    SLAPolicyListResponse,
    SLAPolicyQueryDTO,
    SLAPolicyResponse,
    SLAPolicyService,
    SLAPolicyUpdateDTO,
)

router = APIRouter(prefix="/sla-policies", tags=["SLA Policies"])


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "High priority",
    "description": "Customer-impacting incidents",
    "priority": "HIGH",
    "first_response_minutes": 30,
    "resolution_minutes": 240,
    "business_hours_only": False,
    "escalation_email": "oncall@example.com"
}

BREACH_CHECK_RESPONSE_EXAMPLE = {
    "breaches": [
        {
            "ticket_id": "7d0c7a4e-5d7e-4a4c-9f57-3cc1f1d5a6b1",
            "ticket_number": "TKT-0042",
            "policy_name": "High priority",
            "breach_type": "first_response",
            "expected_minutes": 30,
            "actual_minutes": 45,
            "breached_at": "2024-01-15T10:45:00Z"
        }
    ],
    "checked_count": 12,
    "errors": []
}


# ========== Dependencies ==========

def get_owner_id(x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id")) -> str:
    """Owner scope of the request. Every route is owner-scoped."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Owner-Id header is required"
        )
    return x_owner_id.strip()


def get_policy_service(request: Request) -> SLAPolicyService:
    """Policy service built at startup."""
    return request.app.state.sla_policy_service


def get_breach_scanner(request: Request) -> SLABreachScanner:
    """Breach scanner built at startup."""
    return request.app.state.sla_breach_scanner


# ========== Route Handlers ==========

@router.get(
    "",
    response_model=SLAPolicyListResponse,
    summary="List SLA policies",
)
async def list_policies(
    search: Optional[str] = Query(None, description="Match against name and description"),
    priority: Optional[TicketPriority] = Query(None, description="Filter by priority"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Results per page"),
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    query = SLAPolicyQueryDTO(
        search=search,
        priority=priority,
        is_active=is_active,
        page=page,
        limit=limit
    )
    return await service.list(owner_id, query)


# Must stay above "/{policy_id}" so "check-breaches" is not taken for an ID
@router.get(
    "/check-breaches",
    response_model=BreachCheckResponse,
    summary="Run a breach scan for the caller",
    description="""
    Classify the caller's open, not yet breached tickets against the active
    policies and flag the ones that are overdue.

    Per-ticket failures are reported in `errors`; the response is still 200.
    """,
    responses={
        200: {
            "description": "Scan result",
            "content": {"application/json": {"example": BREACH_CHECK_RESPONSE_EXAMPLE}}
        }
    }
)
async def check_breaches(
    owner_id: str = Depends(get_owner_id),
    scanner: SLABreachScanner = Depends(get_breach_scanner)
):
    result = await scanner.check_breaches(owner_id)
    return BreachCheckResponse.model_validate(result)


@router.get(
    "/{policy_id}",
    response_model=SLAPolicyResponse,
    summary="Get an SLA policy",
    responses={404: {"description": "Policy not found"}}
)
async def get_policy(
    policy_id: str,
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.model_validate(await service.get(policy_id, owner_id))


@router.post(
    "",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA policy",
    description="""
    Create an active policy for one priority.

    Fails with 400 when the thresholds are invalid (both must be positive and
    first response must be due before resolution) or when another active
    policy already covers the priority.
    """,
    responses={400: {"description": "Invalid thresholds or duplicate active policy"}},
    openapi_extra={
        "requestBody": {"content": {"application/json": {"example": POLICY_CREATE_EXAMPLE}}}
    }
)
async def create_policy(
    payload: SLAPolicyCreateDTO,
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.model_validate(await service.create(owner_id, payload))


@router.patch(
    "/{policy_id}",
    response_model=SLAPolicyResponse,
    summary="Partially update an SLA policy",
    responses={
        400: {"description": "Invalid thresholds or duplicate active policy"},
        404: {"description": "Policy not found"}
    }
)
async def update_policy(
    policy_id: str,
    payload: SLAPolicyUpdateDTO,
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.model_validate(await service.update(policy_id, owner_id, payload))


@router.delete(
    "/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an SLA policy",
    responses={404: {"description": "Policy not found"}}
)
async def delete_policy(
    policy_id: str,
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    await service.delete(policy_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{policy_id}/toggle-active",
    response_model=SLAPolicyResponse,
    summary="Activate or deactivate an SLA policy",
    responses={
        400: {"description": "Another active policy already covers the priority"},
        404: {"description": "Policy not found"}
    }
)
async def toggle_policy_active(
    policy_id: str,
    owner_id: str = Depends(get_owner_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.model_validate(await service.toggle_active(policy_id, owner_id))


# Export router for inclusion in main app
sla_router = router
