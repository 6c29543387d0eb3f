"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Every call runs in its own transaction, so a
failed write for one ticket never poisons the rest of a scan.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.config import OPEN_TICKET_STATUSES, TicketPriority
from helpdesk.core import ConflictException, RepositoryException
from helpdesk.sla.application import ISLAPolicyRepository, ITicketRepository, SLAPolicyQueryDTO
from helpdesk.sla.domain import SLAPolicy, Ticket
from helpdesk.sla.infrastructure.models import SLAPolicyModel, TicketModel

_LIKE_ESCAPE = "\\"


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _conflict(priority: TicketPriority, details: Dict[str, Any]) -> ConflictException:
    return ConflictException(
        f"An active SLA policy already exists for {priority.value} priority",
        {**details, "priority": priority.value}
    )


def _contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` literally, wildcards included."""
    escaped = (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_policy(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=str(model.id),
        owner_id=model.owner_id,
        name=model.name,
        description=model.description,
        priority=TicketPriority(model.priority),
        first_response_minutes=model.first_response_minutes,
        resolution_minutes=model.resolution_minutes,
        business_hours_only=model.business_hours_only,
        escalation_email=model.escalation_email,
        is_active=model.is_active,
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        ticket_number=model.ticket_number,
        owner_id=model.owner_id,
        priority=model.priority,
        status=model.status,
        created_at=_as_utc(model.created_at),
        first_response_at=_as_utc(model.first_response_at),
        resolved_at=_as_utc(model.resolved_at),
        sla_breached=model.sla_breached,
    )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of the SLA policy repository.

    The partial unique index on (owner_id, priority) WHERE is_active makes
    the uniqueness check-and-write atomic; violations surface as
    ConflictException.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_active_policies(self, owner_id: str) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel).where(
            SLAPolicyModel.owner_id == owner_id,
            SLAPolicyModel.is_active.is_(True)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_policy(model) for model in result.scalars().all()]

    async def find_policy_by_id(self, policy_id: str) -> Optional[SLAPolicy]:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            return None

        async with self._session_maker() as session:
            model = await session.get(SLAPolicyModel, policy_uuid)
            return _to_policy(model) if model else None

    async def find_policy_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority
    ) -> Optional[SLAPolicy]:
        stmt = select(SLAPolicyModel).where(
            SLAPolicyModel.owner_id == owner_id,
            SLAPolicyModel.priority == priority,
            SLAPolicyModel.is_active.is_(True)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            model = result.scalars().first()
            return _to_policy(model) if model else None

    async def list_policies(
        self,
        owner_id: str,
        query: SLAPolicyQueryDTO
    ) -> Tuple[List[SLAPolicy], int]:
        conditions = [SLAPolicyModel.owner_id == owner_id]

        if query.search:
            pattern = _contains_pattern(query.search)
            conditions.append(or_(
                SLAPolicyModel.name.ilike(pattern, escape=_LIKE_ESCAPE),
                SLAPolicyModel.description.ilike(pattern, escape=_LIKE_ESCAPE)
            ))
        if query.priority is not None:
            conditions.append(SLAPolicyModel.priority == query.priority)
        if query.is_active is not None:
            conditions.append(SLAPolicyModel.is_active.is_(query.is_active))

        count_stmt = select(func.count()).select_from(SLAPolicyModel).where(*conditions)
        page_stmt = (
            select(SLAPolicyModel)
            .where(*conditions)
            .order_by(SLAPolicyModel.created_at.desc(), SLAPolicyModel.name)
            .limit(query.limit)
            .offset(query.offset)
        )

        async with self._session_maker() as session:
            total = (await session.execute(count_stmt)).scalar_one()
            result = await session.execute(page_stmt)
            return [_to_policy(model) for model in result.scalars().all()], total

    async def create_policy(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel(
            id=uuid4(),
            owner_id=policy.owner_id,
            name=policy.name,
            description=policy.description,
            priority=policy.priority,
            first_response_minutes=policy.first_response_minutes,
            resolution_minutes=policy.resolution_minutes,
            business_hours_only=policy.business_hours_only,
            escalation_email=policy.escalation_email,
            is_active=policy.is_active,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
        )

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(model)
        except IntegrityError as e:
            raise _conflict(policy.priority, {"owner_id": policy.owner_id}) from e

        return _to_policy(model)

    async def update_policy(
        self,
        policy_id: str,
        changes: Dict[str, Any]
    ) -> Optional[SLAPolicy]:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            return None

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    model = await session.get(SLAPolicyModel, policy_uuid)
                    if model is None:
                        return None

                    for field_name, value in changes.items():
                        setattr(model, field_name, value)
                    priority = model.priority
                    model.updated_at = datetime.now(timezone.utc)
        except IntegrityError as e:
            raise _conflict(priority, {"policy_id": policy_id}) from e

        return _to_policy(model)

    async def delete_policy(self, policy_id: str) -> None:
        policy_uuid = _parse_uuid(policy_id)
        if policy_uuid is None:
            return

        async with self._session_maker() as session:
            async with session.begin():
                model = await session.get(SLAPolicyModel, policy_uuid)
                if model is not None:
                    await session.delete(model)

    async def active_policy_exists_for_priority(
        self,
        owner_id: str,
        priority: TicketPriority,
        exclude_id: Optional[str] = None
    ) -> bool:
        stmt = select(SLAPolicyModel.id).where(
            SLAPolicyModel.owner_id == owner_id,
            SLAPolicyModel.priority == priority,
            SLAPolicyModel.is_active.is_(True)
        )
        exclude_uuid = _parse_uuid(exclude_id) if exclude_id else None
        if exclude_uuid is not None:
            stmt = stmt.where(SLAPolicyModel.id != exclude_uuid)

        async with self._session_maker() as session:
            result = await session.execute(stmt.limit(1))
            return result.scalar_one_or_none() is not None

    async def find_owner_ids_with_active_policies(self) -> List[str]:
        stmt = (
            select(SLAPolicyModel.owner_id)
            .where(SLAPolicyModel.is_active.is_(True))
            .distinct()
            .order_by(SLAPolicyModel.owner_id)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of the SLA engine's view of tickets.

    Reads open, unflagged tickets and writes the breach flag.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_open_unbreached_tickets(self, owner_id: str) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(
                TicketModel.owner_id == owner_id,
                TicketModel.status.in_(sorted(OPEN_TICKET_STATUSES)),
                TicketModel.sla_breached.is_(False)
            )
            .order_by(TicketModel.created_at.asc())
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_ticket(model) for model in result.scalars().all()]

    async def mark_ticket_breached(self, ticket_id: str) -> None:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            raise RepositoryException(f"Invalid ticket ID: {ticket_id}")

        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_uuid)
            .values(sla_breached=True)
        )
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(stmt)

        if result.rowcount == 0:
            raise RepositoryException(f"Ticket {ticket_id} not found")
