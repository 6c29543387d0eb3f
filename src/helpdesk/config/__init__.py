"""
Configuration Module
====================

Runtime settings (environment variables or `.env`) and the closed
vocabularies shared by every layer: ticket priorities, ticket statuses and
breach types.
"""

from enum import Enum
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings. Field names map to upper-case environment variables,
    e.g. `SLA_SCAN_INTERVAL_SECONDS=0` turns the background scan off.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Service version")
    environment: str = Field(default="development", description="development, staging or production")
    debug: bool = Field(default=False, description="Echo SQL and expose error details")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Pooled connections kept open", ge=1)
    db_max_overflow: int = Field(default=10, description="Extra connections allowed under load", ge=0)
    storage_backend: str = Field(
        default="database",
        description="Where policies and tickets live: 'database' or 'memory'"
    )
    create_tables_on_startup: bool = Field(
        default=True,
        description="Create missing tables at startup (use migrations in production)"
    )

    # ========== SLA Breach Scanning ==========
    sla_scan_interval_seconds: int = Field(
        default=300,
        description="Seconds between scheduled breach scans (0 disables the scheduler)",
        ge=0
    )
    sla_scan_misfire_grace_seconds: int = Field(
        default=60,
        description="How late a scheduled scan may start before it is skipped",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed to call the admin API from a browser"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        allowed = {"database", "memory"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Settings read once per process."""
    return Settings()


# ========== Enumerations ==========

class TicketPriority(str, Enum):
    """Ticket priority. Each owner configures at most one active policy per level."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketStatus(str, Enum):
    """Ticket lifecycle status, owned by the ticketing subsystem."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_ON_CUSTOMER = "WAITING_ON_CUSTOMER"
    WAITING_ON_AGENT = "WAITING_ON_AGENT"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class BreachType(str, Enum):
    """Which SLA clock was exceeded."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"


# ========== Status groups ==========

TERMINAL_TICKET_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
OPEN_TICKET_STATUSES = frozenset(set(TicketStatus) - TERMINAL_TICKET_STATUSES)
