"""
Shared fixtures for the issue lifecycle tests.

Everything runs against a controllable clock so deadlines and overdue
checks are deterministic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.issues.application import IssueService
from src.issues.domain import Issue
from src.issues.infrastructure import InMemoryAgencyConfigProvider, InMemoryIssueRepository

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

RENTER = "renter-3"
LANDLORD = "landlord-9"
AGENCY = "agency-42"


class FixedClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def at(self, **kwargs) -> datetime:
        """Jump to T0 plus the given offset."""
        self.now = T0 + timedelta(**kwargs)
        return self.now


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def issue_data() -> dict:
    return {
        "property_id": "property-17",
        "renter_id": RENTER,
        "landlord_id": LANDLORD,
        "match_id": "match-88",
        "category": "maintenance",
        "priority": "urgent",
        "subject": "Boiler not working",
        "description": "No hot water or heating since last night, boiler shows E119.",
    }


@pytest.fixture
def agency_issue_data(issue_data) -> dict:
    return {**issue_data, "agency_id": AGENCY}


@pytest.fixture
def open_issue(issue_data) -> Issue:
    return Issue.raise_new(issue_data, now=T0)


@pytest.fixture
def issue_repo() -> InMemoryIssueRepository:
    return InMemoryIssueRepository()


@pytest.fixture
def config_provider() -> InMemoryAgencyConfigProvider:
    return InMemoryAgencyConfigProvider()


@pytest.fixture
def service(issue_repo, config_provider, clock) -> IssueService:
    return IssueService(issue_repo, config_provider, clock=clock)
