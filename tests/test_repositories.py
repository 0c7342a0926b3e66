"""
Tests for the SQLAlchemy repositories on an in-memory SQLite database.
"""

from datetime import timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config import IssueStatus, SenderRole
from src.core import ConcurrencyConflictException, RepositoryException, ResourceNotFoundException
from src.infrastructure.database import Base
from src.issues.application import IssueService
from src.issues.domain import (
    AgencyParty,
    Issue,
    IssueStateMachine,
    LandlordParty,
    SLAConfiguration,
    TransitionRequest,
)
from src.issues.infrastructure import SQLAlchemyAgencyConfigProvider, SQLAlchemyIssueRepository
from src.issues.infrastructure import models  # noqa: F401
from tests.conftest import AGENCY, LANDLORD, RENTER, T0


@pytest.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def repo(session):
    return SQLAlchemyIssueRepository(session)


class TestSQLAlchemyIssueRepository:
    """Persistence round trip and optimistic concurrency."""

    async def test_create_and_get(self, repo, issue_data):
        issue = Issue.raise_new({**issue_data, "images": ["boiler.jpg"]}, now=T0)
        await repo.create(issue)

        loaded = await repo.get_by_id(issue.id)

        assert loaded.id == issue.id
        assert loaded.status == IssueStatus.OPEN
        assert loaded.raised_at == T0
        assert loaded.raised_at.tzinfo == timezone.utc
        assert loaded.sla_deadline == T0 + timedelta(hours=24)
        assert loaded.images == ["boiler.jpg"]
        assert loaded.responsible_party.party_id == LANDLORD
        assert loaded.status_history == issue.status_history
        assert loaded.version == 1

    async def test_agency_party_keeps_its_configuration(self, repo, agency_issue_data):
        config = SLAConfiguration(urgent_response_hours=12, maintenance_response_days=5)
        issue = Issue.raise_new(agency_issue_data, now=T0, agency_config=config)
        await repo.create(issue)

        party = (await repo.get_by_id(issue.id)).responsible_party

        assert isinstance(party, AgencyParty)
        assert party.agency_id == AGENCY
        assert party.sla_configuration == config

    async def test_landlord_party_has_no_configuration(self, repo, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)
        await repo.create(issue)

        party = (await repo.get_by_id(issue.id)).responsible_party

        assert isinstance(party, LandlordParty)

    async def test_get_unknown_or_malformed_id(self, repo):
        assert await repo.get_by_id("6f1c2d8e-0000-4000-8000-000000000000") is None
        assert await repo.get_by_id("not-a-uuid") is None

    async def test_create_rejects_non_uuid_id(self, repo, issue_data):
        issue = Issue.raise_new(issue_data, now=T0, issue_id="ISSUE-1")

        with pytest.raises(RepositoryException):
            await repo.create(issue)

    async def test_update_persists_logs_and_bumps_version(self, repo, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)
        await repo.create(issue)

        issue.append_message(LANDLORD, SenderRole.LANDLORD, "Engineer booked", True, T0 + timedelta(hours=1))
        issue.add_internal_note(LANDLORD, "Call warranty provider", T0 + timedelta(hours=1))
        IssueStateMachine().apply(
            issue, TransitionRequest(IssueStatus.ACKNOWLEDGED, LANDLORD), T0 + timedelta(hours=2)
        )
        await repo.update(issue, expected_version=1)

        loaded = await repo.get_by_id(issue.id)
        assert issue.version == 2
        assert loaded.version == 2
        assert loaded.status == IssueStatus.ACKNOWLEDGED
        assert loaded.acknowledged_at == T0 + timedelta(hours=2)
        assert len(loaded.status_history) == 2
        assert loaded.messages[0].is_internal is True
        assert loaded.messages[0].timestamp == T0 + timedelta(hours=1)
        assert loaded.internal_notes[0].content == "Call warranty provider"

    async def test_stale_version_conflicts(self, repo, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)
        await repo.create(issue)
        first = await repo.get_by_id(issue.id)
        second = await repo.get_by_id(issue.id)

        first.append_message(RENTER, "renter", "first writer", False, T0 + timedelta(hours=1))
        await repo.update(first, expected_version=1)

        second.append_message(RENTER, "renter", "second writer", False, T0 + timedelta(hours=1))
        with pytest.raises(ConcurrencyConflictException):
            await repo.update(second, expected_version=1)

        loaded = await repo.get_by_id(issue.id)
        assert [m.content for m in loaded.messages] == ["first writer"]

    async def test_update_missing_issue(self, repo, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)

        with pytest.raises(ResourceNotFoundException):
            await repo.update(issue, expected_version=1)

    async def test_listings(self, repo, issue_data, agency_issue_data):
        older = Issue.raise_new(issue_data, now=T0)
        newer = Issue.raise_new(agency_issue_data, now=T0 + timedelta(hours=1))
        elsewhere = Issue.raise_new({**issue_data, "property_id": "property-2", "match_id": "m-2"}, now=T0)
        for issue in (older, newer, elsewhere):
            await repo.create(issue)

        by_property = await repo.list_by_property("property-17")
        assert [i.id for i in by_property] == [newer.id, older.id]
        assert [i.id for i in await repo.list_by_match("m-2")] == [elsewhere.id]
        assert [i.id for i in await repo.list_by_agency(AGENCY)] == [newer.id]
        assert isinstance((await repo.list_by_agency(AGENCY))[0].responsible_party, AgencyParty)

    async def test_list_open_excludes_terminal(self, repo, issue_data):
        open_issue = Issue.raise_new(issue_data, now=T0)
        done = Issue.raise_new(issue_data, now=T0)
        machine = IssueStateMachine()
        machine.apply(done, TransitionRequest(IssueStatus.IN_PROGRESS, LANDLORD), T0 + timedelta(hours=1))
        machine.apply(
            done,
            TransitionRequest(IssueStatus.RESOLVED, LANDLORD, resolution_summary="Fixed"),
            T0 + timedelta(hours=2)
        )
        await repo.create(open_issue)
        await repo.create(done)

        assert [i.id for i in await repo.list_open()] == [open_issue.id]

    async def test_service_end_to_end_on_sql(self, session, clock, issue_data):
        service = IssueService(SQLAlchemyIssueRepository(session), clock=clock)
        issue = await service.create_issue(issue_data)

        clock.at(hours=2)
        await service.transition_status(issue.id, IssueStatus.ACKNOWLEDGED, LANDLORD)
        clock.at(hours=30)
        await service.transition_status(issue.id, IssueStatus.RESOLVED, LANDLORD, resolution_summary="Fixed")
        clock.at(hours=31)
        await service.transition_status(issue.id, IssueStatus.CLOSED, RENTER)

        stored = await service.get_issue(issue.id)
        assert stored.status == IssueStatus.CLOSED
        assert stored.is_overdue is True
        assert [e.status for e in stored.status_history] == [
            IssueStatus.OPEN, IssueStatus.ACKNOWLEDGED, IssueStatus.RESOLVED, IssueStatus.CLOSED
        ]


class TestSQLAlchemyAgencyConfigProvider:
    """Agency SLA configurations stored in the database."""

    async def test_missing_agency_returns_none(self, session):
        provider = SQLAlchemyAgencyConfigProvider(session)

        assert await provider.get_sla_configuration("agency-unknown") is None

    async def test_save_and_replace(self, session):
        provider = SQLAlchemyAgencyConfigProvider(session)
        await provider.save_sla_configuration(AGENCY, SLAConfiguration(urgent_response_hours=12))
        await provider.save_sla_configuration(
            AGENCY, SLAConfiguration(urgent_response_hours=8, maintenance_response_days=5)
        )

        config = await provider.get_sla_configuration(AGENCY)

        assert config.urgent_response_hours == 8
        assert config.maintenance_response_days == 5
        assert config.emergency_response_hours is None
