"""
Issue Infrastructure Repositories
=================================

Concrete implementations of the repository and config-provider interfaces.

This layer contains the data access logic - how we store and retrieve
issues. Both issue repositories give the same guarantee: an update only
lands if nobody else wrote the ticket since it was read.
"""

import copy
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import IssueCategory, IssuePriority, IssueStatus, NON_TERMINAL_STATUSES, SenderRole
from src.core import ConcurrencyConflictException, RepositoryException, ResourceNotFoundException
from src.issues.application import IAgencyConfigProvider, IIssueRepository
from src.issues.domain import (
    AgencyParty,
    AppendOnlyLog,
    InternalNote,
    Issue,
    IssueMessage,
    LandlordParty,
    SLAConfiguration,
    StatusHistoryEntry,
)
from src.issues.infrastructure.models import AgencySLAConfigurationModel, IssueModel

# Columns an update may touch; identity, parties and SLA fields are write-once
MUTABLE_COLUMNS = (
    "status",
    "is_overdue",
    "acknowledged_at",
    "resolved_at",
    "closed_at",
    "updated_at",
    "status_history",
    "messages",
    "internal_notes",
    "resolution_summary",
    "resolution_cost",
    "renter_satisfaction_rating",
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dt_to_json(value: datetime) -> str:
    return value.isoformat()


def _dt_from_json(value: str) -> datetime:
    return _as_utc(datetime.fromisoformat(value))


class IssueRecordMapper:
    """Converts between the Issue entity and IssueModel column values."""

    @staticmethod
    def to_columns(issue: Issue) -> dict:
        return {
            "property_id": issue.property_id,
            "renter_id": issue.renter_id,
            "landlord_id": issue.landlord_id,
            "agency_id": issue.agency_id,
            "assigned_agent_id": issue.assigned_agent_id,
            "match_id": issue.match_id,
            "responsible_party_type": issue.responsible_party.kind,
            "responsible_party_id": issue.responsible_party.party_id,
            "responsible_party_sla": IssueRecordMapper._party_sla(issue),
            "category": issue.category.value,
            "priority": issue.priority.value,
            "subject": issue.subject,
            "description": issue.description,
            "images": list(issue.images),
            "is_health_and_safety_hazard": issue.is_health_and_safety_hazard,
            "hazard_type": issue.hazard_type,
            "raised_at": issue.raised_at,
            "sla_deadline": issue.sla_deadline,
            "sla_hours": issue.sla_hours,
            "acknowledged_at": issue.acknowledged_at,
            "resolved_at": issue.resolved_at,
            "closed_at": issue.closed_at,
            "updated_at": issue.updated_at,
            "status": issue.status.value,
            "is_overdue": issue.is_overdue,
            "status_history": [
                {
                    "status": e.status.value,
                    "timestamp": _dt_to_json(e.timestamp),
                    "updated_by": e.updated_by,
                    "note": e.note,
                }
                for e in issue.status_history
            ],
            "messages": [
                {
                    "id": m.id,
                    "sender_id": m.sender_id,
                    "sender_role": m.sender_role.value,
                    "sender_name": m.sender_name,
                    "content": m.content,
                    "timestamp": _dt_to_json(m.timestamp),
                    "is_internal": m.is_internal,
                }
                for m in issue.messages
            ],
            "internal_notes": [
                {
                    "author_id": n.author_id,
                    "content": n.content,
                    "timestamp": _dt_to_json(n.timestamp),
                }
                for n in issue.internal_notes
            ],
            "resolution_summary": issue.resolution_summary,
            "resolution_cost": issue.resolution_cost,
            "renter_satisfaction_rating": issue.renter_satisfaction_rating,
        }

    @staticmethod
    def _party_sla(issue: Issue) -> Optional[dict]:
        config = getattr(issue.responsible_party, "sla_configuration", None)
        return config.model_dump() if config is not None else None

    @staticmethod
    def to_domain(model: IssueModel) -> Issue:
        if model.responsible_party_type == "agency":
            config = None
            if model.responsible_party_sla is not None:
                config = SLAConfiguration.model_validate(model.responsible_party_sla)
            party = AgencyParty(agency_id=model.responsible_party_id, sla_configuration=config)
        else:
            party = LandlordParty(landlord_id=model.responsible_party_id)

        return Issue(
            id=str(model.id),
            property_id=model.property_id,
            renter_id=model.renter_id,
            landlord_id=model.landlord_id,
            agency_id=model.agency_id,
            assigned_agent_id=model.assigned_agent_id,
            match_id=model.match_id,
            responsible_party=party,
            category=IssueCategory(model.category),
            priority=IssuePriority(model.priority),
            subject=model.subject,
            description=model.description,
            images=list(model.images or []),
            is_health_and_safety_hazard=model.is_health_and_safety_hazard,
            hazard_type=model.hazard_type,
            raised_at=_as_utc(model.raised_at),
            sla_deadline=_as_utc(model.sla_deadline),
            sla_hours=model.sla_hours,
            acknowledged_at=_as_utc(model.acknowledged_at),
            resolved_at=_as_utc(model.resolved_at),
            closed_at=_as_utc(model.closed_at),
            updated_at=_as_utc(model.updated_at),
            status=IssueStatus(model.status),
            is_overdue=model.is_overdue,
            status_history=AppendOnlyLog(
                StatusHistoryEntry(
                    status=IssueStatus(e["status"]),
                    timestamp=_dt_from_json(e["timestamp"]),
                    updated_by=e["updated_by"],
                    note=e.get("note"),
                )
                for e in model.status_history or []
            ),
            messages=AppendOnlyLog(
                IssueMessage(
                    id=m["id"],
                    sender_id=m["sender_id"],
                    sender_role=SenderRole(m["sender_role"]),
                    sender_name=m["sender_name"],
                    content=m["content"],
                    timestamp=_dt_from_json(m["timestamp"]),
                    is_internal=m.get("is_internal", False),
                )
                for m in model.messages or []
            ),
            internal_notes=AppendOnlyLog(
                InternalNote(
                    author_id=n["author_id"],
                    content=n["content"],
                    timestamp=_dt_from_json(n["timestamp"]),
                )
                for n in model.internal_notes or []
            ),
            resolution_summary=model.resolution_summary,
            resolution_cost=model.resolution_cost,
            renter_satisfaction_rating=model.renter_satisfaction_rating,
            version=model.version,
        )


class SQLAlchemyIssueRepository(IIssueRepository):
    """
    SQLAlchemy implementation of the issue repository.

    Optimistic concurrency is a conditional UPDATE on the version column;
    zero affected rows means another writer got there first.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        try:
            issue_uuid = UUID(issue_id)
        except (TypeError, ValueError):
            return None

        stmt = (
            select(IssueModel)
            .where(IssueModel.id == issue_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return IssueRecordMapper.to_domain(model) if model else None

    async def create(self, issue: Issue) -> Issue:
        try:
            issue_uuid = UUID(issue.id)
        except ValueError:
            raise RepositoryException(f"Invalid issue ID: {issue.id}")

        model = IssueModel(id=issue_uuid, version=issue.version, **IssueRecordMapper.to_columns(issue))
        self._session.add(model)
        await self._session.flush()
        return issue

    async def update(self, issue: Issue, expected_version: int) -> Issue:
        issue_uuid = UUID(issue.id)
        columns = IssueRecordMapper.to_columns(issue)
        values = {name: columns[name] for name in MUTABLE_COLUMNS}
        values["version"] = expected_version + 1

        stmt = (
            update(IssueModel)
            .where(IssueModel.id == issue_uuid, IssueModel.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            exists = await self._session.execute(
                select(IssueModel.id).where(IssueModel.id == issue_uuid)
            )
            if exists.scalar_one_or_none() is None:
                raise ResourceNotFoundException("Issue", issue.id)
            raise ConcurrencyConflictException(issue.id, expected_version)

        issue.version = expected_version + 1
        return issue

    async def list_by_property(self, property_id: str) -> List[Issue]:
        return await self._list(IssueModel.property_id == property_id)

    async def list_by_match(self, match_id: str) -> List[Issue]:
        return await self._list(IssueModel.match_id == match_id)

    async def list_by_agency(self, agency_id: str) -> List[Issue]:
        return await self._list(IssueModel.agency_id == agency_id)

    async def list_open(self) -> List[Issue]:
        return await self._list(
            IssueModel.status.in_([s.value for s in NON_TERMINAL_STATUSES])
        )

    async def _list(self, condition) -> List[Issue]:
        stmt = (
            select(IssueModel)
            .where(condition)
            .order_by(IssueModel.raised_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [IssueRecordMapper.to_domain(m) for m in result.scalars().all()]


class InMemoryIssueRepository(IIssueRepository):
    """
    Process-local issue store.

    Hands out deep copies so a caller holding a stale read cannot
    affect the stored ticket; versions behave exactly like the SQL store.
    """

    def __init__(self):
        self._issues: Dict[str, Issue] = {}

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        issue = self._issues.get(issue_id)
        return copy.deepcopy(issue) if issue else None

    async def create(self, issue: Issue) -> Issue:
        if issue.id in self._issues:
            raise RepositoryException(f"Issue {issue.id} already exists")
        self._issues[issue.id] = copy.deepcopy(issue)
        return issue

    async def update(self, issue: Issue, expected_version: int) -> Issue:
        stored = self._issues.get(issue.id)
        if stored is None:
            raise ResourceNotFoundException("Issue", issue.id)
        if stored.version != expected_version:
            raise ConcurrencyConflictException(issue.id, expected_version)

        issue.version = expected_version + 1
        self._issues[issue.id] = copy.deepcopy(issue)
        return issue

    async def list_by_property(self, property_id: str) -> List[Issue]:
        return self._select(lambda i: i.property_id == property_id)

    async def list_by_match(self, match_id: str) -> List[Issue]:
        return self._select(lambda i: i.match_id == match_id)

    async def list_by_agency(self, agency_id: str) -> List[Issue]:
        return self._select(lambda i: i.agency_id == agency_id)

    async def list_open(self) -> List[Issue]:
        return self._select(lambda i: i.status in NON_TERMINAL_STATUSES)

    def _select(self, predicate) -> List[Issue]:
        matches = [copy.deepcopy(i) for i in self._issues.values() if predicate(i)]
        return sorted(matches, key=lambda i: i.raised_at, reverse=True)


class SQLAlchemyAgencyConfigProvider(IAgencyConfigProvider):
    """Reads agency SLA configurations from the agency_sla_configurations table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_sla_configuration(self, agency_id: str) -> Optional[SLAConfiguration]:
        stmt = select(AgencySLAConfigurationModel).where(
            AgencySLAConfigurationModel.agency_id == agency_id
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None

        return SLAConfiguration(
            emergency_response_hours=model.emergency_response_hours,
            urgent_response_hours=model.urgent_response_hours,
            routine_response_hours=model.routine_response_hours,
            maintenance_response_days=model.maintenance_response_days,
        )

    async def save_sla_configuration(self, agency_id: str, config: SLAConfiguration) -> None:
        """
        Insert or replace an agency's configuration.

        Only affects tickets raised afterwards; existing deadlines are never rescheduled.
        """
        model = await self._session.get(AgencySLAConfigurationModel, agency_id)
        if model is None:
            model = AgencySLAConfigurationModel(agency_id=agency_id)
            self._session.add(model)

        model.emergency_response_hours = config.emergency_response_hours
        model.urgent_response_hours = config.urgent_response_hours
        model.routine_response_hours = config.routine_response_hours
        model.maintenance_response_days = config.maintenance_response_days
        model.updated_at = datetime.now(timezone.utc)
        await self._session.flush()


class InMemoryAgencyConfigProvider(IAgencyConfigProvider):
    """Dictionary-backed provider for embedded use and tests."""

    def __init__(self, configs: Optional[Dict[str, SLAConfiguration]] = None):
        self._configs: Dict[str, SLAConfiguration] = dict(configs or {})

    async def save_sla_configuration(self, agency_id: str, config: SLAConfiguration) -> None:
        self._configs[agency_id] = config

    async def get_sla_configuration(self, agency_id: str) -> Optional[SLAConfiguration]:
        return self._configs.get(agency_id)
