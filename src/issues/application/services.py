"""
Issue Application Services
==========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Every write follows the same shape: read the ticket, change it in memory,
then hand it back with the version that was read. A concurrent writer makes
the repository raise ConcurrencyConflictException; nothing here retries.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from src.config import IssueStatus, SenderRole
from src.core import ConcurrencyConflictException, ResourceNotFoundException
from src.issues.domain import (
    Issue,
    IssueStateMachine,
    SLACalculator,
    SLAConfiguration,
    TransitionRequest,
)
from src.issues.domain.validation import read_field
from src.issues.application.dto import AgencyPerformanceResponse, SweepResponse
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IIssueRepository(ABC):
    """Interface for issue persistence."""

    @abstractmethod
    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        """Get issue by id, or None."""

    @abstractmethod
    async def create(self, issue: Issue) -> Issue:
        """Store a new issue."""

    @abstractmethod
    async def update(self, issue: Issue, expected_version: int) -> Issue:
        """
        Store `issue` only if the stored version still equals `expected_version`.

        On success the issue's version is bumped. Raises
        ConcurrencyConflictException on mismatch and ResourceNotFoundException
        if the issue no longer exists.
        """

    @abstractmethod
    async def list_by_property(self, property_id: str) -> List[Issue]:
        """Issues raised against a property, newest first."""

    @abstractmethod
    async def list_by_match(self, match_id: str) -> List[Issue]:
        """Issues belonging to a tenancy/match, newest first."""

    @abstractmethod
    async def list_by_agency(self, agency_id: str) -> List[Issue]:
        """Issues managed by an agency, newest first."""

    @abstractmethod
    async def list_open(self) -> List[Issue]:
        """Issues in a non-terminal status."""


class IAgencyConfigProvider(ABC):
    """Interface for agency SLA configuration access."""

    @abstractmethod
    async def get_sla_configuration(self, agency_id: str) -> Optional[SLAConfiguration]:
        """Configuration for an agency, or None when it has none."""


# ========== Application Services ==========

class IssueService:
    """
    Entry point for raising, moving, discussing and reading issues.

    Stateless between calls; all state lives behind the repository.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        config_provider: Optional[IAgencyConfigProvider] = None,
        state_machine: Optional[IssueStateMachine] = None,
        clock: Clock = utc_now
    ):
        self._issue_repo = issue_repository
        self._config_provider = config_provider
        self._state_machine = state_machine or IssueStateMachine()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ---------- writes ----------

    async def create_issue(self, data: Any) -> Issue:
        """
        Validate input, resolve the SLA deadline and persist a new open issue.

        Raises:
            ValidationException: If the input is malformed
        """
        agency_id = read_field(data, "agency_id")
        agency_config = None
        if agency_id and self._config_provider is not None:
            agency_config = await self._config_provider.get_sla_configuration(agency_id)

        issue = Issue.raise_new(data, now=self.now(), agency_config=agency_config)
        issue = await self._issue_repo.create(issue)

        logger.info(
            "Issue raised",
            extra={
                "issue_id": issue.id,
                "property_id": issue.property_id,
                "priority": issue.priority.value,
                "responsible_party": issue.responsible_party.kind,
                "sla_hours": issue.sla_hours,
                "sla_deadline": issue.sla_deadline.isoformat(),
                "agency_config_used": agency_config is not None,
            }
        )
        return issue

    async def transition_status(
        self,
        issue_id: str,
        target_status: IssueStatus,
        actor_id: str,
        note: Optional[str] = None,
        resolution_summary: Optional[str] = None,
        resolution_cost: Optional[float] = None
    ) -> Issue:
        """
        Move an issue to `target_status` on behalf of `actor_id`.

        Raises:
            ResourceNotFoundException: Unknown issue
            IllegalTransitionException: Not allowed from the current status
            UnauthorizedActorException: Actor may not make this move
            ValidationException: Missing resolution summary or bad input
            ConcurrencyConflictException: Someone else changed the issue first
        """
        request = TransitionRequest(
            target_status=target_status,
            actor_id=actor_id,
            note=note,
            resolution_summary=resolution_summary,
            resolution_cost=resolution_cost,
        )

        captured = {}

        def apply(issue: Issue, now: datetime) -> None:
            captured["from"] = issue.status
            self._state_machine.apply(issue, request, now)

        issue = await self._mutate(issue_id, apply)

        logger.info(
            "Issue status changed",
            extra={
                "issue_id": issue.id,
                "from_status": captured["from"].value,
                "to_status": issue.status.value,
                "actor_id": actor_id,
                "is_overdue": issue.is_overdue,
                "version": issue.version,
            }
        )
        return issue

    async def append_message(
        self,
        issue_id: str,
        sender_id: str,
        sender_role: SenderRole,
        content: str,
        is_internal: bool = False,
        sender_name: Optional[str] = None
    ) -> Issue:
        """Append a message to the thread; status and deadline are untouched."""
        issue = await self._mutate(
            issue_id,
            lambda issue, now: issue.append_message(
                sender_id, sender_role, content, is_internal, now, sender_name
            )
        )
        logger.debug(
            "Issue message appended",
            extra={"issue_id": issue_id, "sender_id": sender_id, "is_internal": is_internal}
        )
        return issue

    async def add_internal_note(self, issue_id: str, author_id: str, content: str) -> Issue:
        """Add a landlord/agency-only note."""
        return await self._mutate(
            issue_id,
            lambda issue, now: issue.add_internal_note(author_id, content, now)
        )

    async def rate_resolution(self, issue_id: str, renter_id: str, rating: int) -> Issue:
        """Record the renter's satisfaction rating on a resolved/closed issue."""
        return await self._mutate(
            issue_id,
            lambda issue, now: issue.rate_resolution(renter_id, rating, now)
        )

    # ---------- reads ----------

    async def get_issue(self, issue_id: str) -> Issue:
        """Current state of an issue with a freshly evaluated overdue flag."""
        issue = await self._load(issue_id)
        issue.refresh_overdue(self.now())
        return issue

    async def list_issues_for_property(self, property_id: str) -> List[Issue]:
        return self._refreshed(await self._issue_repo.list_by_property(property_id))

    async def list_issues_for_match(self, match_id: str) -> List[Issue]:
        return self._refreshed(await self._issue_repo.list_by_match(match_id))

    async def list_issues_for_agency(self, agency_id: str) -> List[Issue]:
        return self._refreshed(await self._issue_repo.list_by_agency(agency_id))

    # ---------- helpers ----------

    async def _load(self, issue_id: str) -> Issue:
        issue = await self._issue_repo.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def _mutate(
        self,
        issue_id: str,
        action: Callable[[Issue, datetime], Any]
    ) -> Issue:
        issue = await self._load(issue_id)
        expected_version = issue.version
        now = self.now()

        issue.refresh_overdue(now)
        action(issue, now)

        try:
            return await self._issue_repo.update(issue, expected_version)
        except ConcurrencyConflictException:
            logger.warning(
                "Concurrent modification detected",
                extra={"issue_id": issue_id, "expected_version": expected_version}
            )
            raise

    def _refreshed(self, issues: List[Issue]) -> List[Issue]:
        now = self.now()
        for issue in issues:
            issue.refresh_overdue(now)
        return issues


class OverdueSweepService:
    """
    Periodic overdue evaluation for open issues.

    Meant to be driven by an external scheduler. Persists only issues whose
    flag actually changed; conflicting writers win and the issue is picked
    up again on the next sweep.
    """

    def __init__(self, issue_repository: IIssueRepository, clock: Clock = utc_now):
        self._issue_repo = issue_repository
        self._clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> SweepResponse:
        now = now or self._clock()
        open_issues = await self._issue_repo.list_open()

        updated = 0
        conflicts = 0
        newly_overdue: List[str] = []

        for issue in open_issues:
            before = issue.is_overdue
            expected_version = issue.version
            if issue.refresh_overdue(now) == before:
                continue

            try:
                await self._issue_repo.update(issue, expected_version)
            except (ConcurrencyConflictException, ResourceNotFoundException) as e:
                conflicts += 1
                logger.warning(
                    "Overdue sweep skipped issue",
                    extra={"issue_id": issue.id, "error": e.message}
                )
                continue

            updated += 1
            if issue.is_overdue:
                newly_overdue.append(issue.id)
                logger.warning(
                    "Issue breached SLA",
                    extra={
                        "issue_id": issue.id,
                        "priority": issue.priority.value,
                        "sla_deadline": issue.sla_deadline.isoformat(),
                        "responsible_party": issue.responsible_party.party_id,
                    }
                )

        result = SweepResponse(
            evaluated=len(open_issues),
            newly_overdue=len(newly_overdue),
            updated=updated,
            conflicts=conflicts,
            newly_overdue_ids=newly_overdue,
        )
        logger.info("Overdue sweep complete", extra=result.model_dump(exclude={"newly_overdue_ids"}))
        return result


class SLAReportService:
    """Per-agency SLA performance figures."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        clock: Clock = utc_now,
        approaching_fraction: float = 0.25
    ):
        self._issue_repo = issue_repository
        self._clock = clock
        self._approaching_fraction = approaching_fraction

    async def agency_performance(
        self,
        agency_id: str,
        now: Optional[datetime] = None
    ) -> AgencyPerformanceResponse:
        now = now or self._clock()
        issues = await self._issue_repo.list_by_agency(agency_id)

        open_issues = [i for i in issues if not i.is_terminal]
        for issue in issues:
            issue.refresh_overdue(now)

        response_times = [i.response_time_hours for i in issues if i.response_time_hours is not None]
        resolution_times = [i.resolution_time_days for i in issues if i.resolution_time_days is not None]
        within_sla = sum(1 for i in issues if not i.is_overdue)
        rate = SLACalculator.compliance_rate(len(issues), within_sla)

        return AgencyPerformanceResponse(
            agency_id=agency_id,
            total_issues=len(issues),
            open_issues=len(open_issues),
            resolved_issues=len(issues) - len(open_issues),
            overdue_open_issues=sum(1 for i in open_issues if i.is_overdue),
            approaching_deadline_issues=sum(
                1 for i in open_issues
                if SLACalculator.is_approaching_deadline(
                    now, i.raised_at, i.sla_deadline, self._approaching_fraction
                )
            ),
            avg_response_time_hours=_average(response_times),
            avg_resolution_time_days=_average(resolution_times),
            compliance_rate=rate,
            compliance_band=SLACalculator.compliance_band(rate).value,
        )


def _average(values: List[float]) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), 1)


def build_state_machine(close_grace_period_hours: float) -> IssueStateMachine:
    """State machine configured from settings."""
    return IssueStateMachine(close_grace_period=timedelta(hours=close_grace_period_hours))
