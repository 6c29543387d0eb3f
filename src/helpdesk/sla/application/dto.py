"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA policy API layer.

These Pydantic models handle serialization/deserialization for API requests
and responses. Threshold rules are enforced by the service, not here, so a
bad threshold surfaces as the same domain error whatever the entry point.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.config import BreachType, TicketPriority


# Fields an update may explicitly reset to null
NULLABLE_POLICY_FIELDS = frozenset({"description", "escalation_email"})


# ========== Request DTOs ==========

class SLAPolicyCreateDTO(BaseModel):
    """DTO for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=255, description="Policy name")
    description: Optional[str] = Field(None, description="Free-form description")
    priority: TicketPriority = Field(..., description="Ticket priority this policy covers")
    first_response_minutes: int = Field(..., description="Minutes allowed until first response")
    resolution_minutes: int = Field(..., description="Minutes allowed until resolution")
    business_hours_only: bool = Field(default=False, description="Count business hours only")
    escalation_email: Optional[str] = Field(None, max_length=320, description="Escalation contact")


class SLAPolicyUpdateDTO(BaseModel):
    """DTO for a partial policy update. Only fields sent are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[TicketPriority] = None
    first_response_minutes: Optional[int] = None
    resolution_minutes: Optional[int] = None
    business_hours_only: Optional[bool] = None
    escalation_email: Optional[str] = Field(None, max_length=320)

    def changes(self) -> Dict[str, Any]:
        """
        Fields explicitly sent by the caller.

        ``null`` only clears nullable fields; for the rest it means "keep".
        """
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_POLICY_FIELDS
        }


class SLAPolicyQueryDTO(BaseModel):
    """Query parameters for listing policies."""
    search: Optional[str] = None
    priority: Optional[TicketPriority] = None
    is_active: Optional[bool] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ========== Response DTOs ==========

class SLAPolicyResponse(BaseModel):
    """Response model for an SLA policy."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    priority: TicketPriority
    first_response_minutes: int
    resolution_minutes: int
    business_hours_only: bool
    escalation_email: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PaginationResponse(BaseModel):
    """Pagination block of a list response."""
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationResponse":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0
        )


class SLAPolicyListResponse(BaseModel):
    """Response model for a page of policies."""
    items: List[SLAPolicyResponse] = Field(default_factory=list)
    pagination: PaginationResponse


class BreachResultResponse(BaseModel):
    """Response model for a detected breach."""
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    ticket_number: str
    policy_name: str
    breach_type: BreachType
    expected_minutes: int
    actual_minutes: int
    breached_at: datetime


class BreachCheckResponse(BaseModel):
    """Response model for one breach scan."""
    model_config = ConfigDict(from_attributes=True)

    breaches: List[BreachResultResponse] = Field(default_factory=list)
    checked_count: int = Field(..., description="Open, unflagged tickets examined")
    errors: List[str] = Field(default_factory=list, description="Per-ticket failures")
