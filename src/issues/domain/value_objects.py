"""
Issue Value Objects
===================

Immutable value objects for the issue domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from src.config import (
    ComplianceBand,
    DEFAULT_SLA_HOURS,
    IssuePriority,
    IssueStatus,
    TERMINAL_STATUSES,
)


class SLAConfiguration(BaseModel):
    """
    SLA configuration owned by a management agency.

    Read-only input to the engine. Fields may be missing or non-positive;
    the resolver falls back to platform defaults for those.
    """
    model_config = ConfigDict(frozen=True)

    emergency_response_hours: Optional[float] = Field(default=None, description="Emergency response window")
    urgent_response_hours: Optional[float] = Field(default=None, description="Urgent response window")
    routine_response_hours: Optional[float] = Field(default=None, description="Routine response window")
    maintenance_response_days: Optional[float] = Field(
        default=None,
        description="Response window for low priority tickets, in days"
    )

    def get_hours_for_priority(self, priority: IssuePriority) -> Optional[float]:
        """Raw configured hours for a priority (low converts days to hours)."""
        priority = IssuePriority(priority)
        if priority == IssuePriority.EMERGENCY:
            return self.emergency_response_hours
        if priority == IssuePriority.URGENT:
            return self.urgent_response_hours
        if priority == IssuePriority.ROUTINE:
            return self.routine_response_hours
        if self.maintenance_response_days is None:
            return None
        return self.maintenance_response_days * 24


@dataclass(frozen=True)
class LandlordParty:
    """The landlord is accountable for the ticket."""
    landlord_id: str
    kind: str = field(default="landlord", init=False)

    @property
    def party_id(self) -> str:
        return self.landlord_id


@dataclass(frozen=True)
class AgencyParty:
    """A management agency is accountable on the landlord's behalf."""
    agency_id: str
    sla_configuration: Optional[SLAConfiguration] = field(default=None, compare=False)
    kind: str = field(default="agency", init=False)

    @property
    def party_id(self) -> str:
        return self.agency_id


ResponsibleParty = Union[LandlordParty, AgencyParty]


def resolve_responsible_party(
    landlord_id: str,
    agency_id: Optional[str] = None,
    sla_configuration: Optional[SLAConfiguration] = None
) -> ResponsibleParty:
    """Agency wins whenever one is attached to the ticket."""
    if agency_id:
        return AgencyParty(agency_id=agency_id, sla_configuration=sla_configuration)
    return LandlordParty(landlord_id=landlord_id)


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all deadline, overdue and compliance
    arithmetic lives here.
    """

    @staticmethod
    def resolve_hours(
        priority: IssuePriority,
        agency_config: Optional[SLAConfiguration] = None
    ) -> float:
        """
        Hours allowed for a priority.

        Uses the agency configuration when it yields a positive value,
        otherwise the platform default. Never raises for a missing config.
        """
        priority = IssuePriority(priority)
        if agency_config is not None:
            hours = agency_config.get_hours_for_priority(priority)
            if hours is not None and hours > 0:
                return float(hours)
        return float(DEFAULT_SLA_HOURS[priority])

    @staticmethod
    def resolve_deadline(
        raised_at: datetime,
        priority: IssuePriority,
        agency_config: Optional[SLAConfiguration] = None
    ) -> datetime:
        """
        Calculate the SLA deadline for an issue.

        Args:
            raised_at: When the issue was raised
            priority: Issue priority
            agency_config: Managing agency's configuration, if any

        Returns:
            raised_at plus the resolved number of hours
        """
        hours = SLACalculator.resolve_hours(priority, agency_config)
        return raised_at + timedelta(hours=hours)

    @staticmethod
    def is_overdue(
        now: datetime,
        status: IssueStatus,
        sla_deadline: datetime,
        last_value: bool = False
    ) -> bool:
        """
        Overdue check.

        Non-terminal tickets are overdue strictly after the deadline.
        Terminal tickets keep whatever value was last computed.
        """
        if IssueStatus(status) in TERMINAL_STATUSES:
            return last_value
        return now > sla_deadline

    @staticmethod
    def is_approaching_deadline(
        now: datetime,
        raised_at: datetime,
        sla_deadline: datetime,
        fraction: float = 0.25
    ) -> bool:
        """True when not yet overdue but within the last `fraction` of the SLA window."""
        remaining = (sla_deadline - now).total_seconds()
        if remaining <= 0:
            return False
        total = (sla_deadline - raised_at).total_seconds()
        return remaining <= total * fraction

    @staticmethod
    def response_time_hours(
        raised_at: datetime,
        acknowledged_at: Optional[datetime]
    ) -> Optional[float]:
        """Hours from raise to acknowledgement, rounded to one decimal."""
        if acknowledged_at is None:
            return None
        hours = (acknowledged_at - raised_at).total_seconds() / 3600
        return round(hours, 1)

    @staticmethod
    def resolution_time_days(
        raised_at: datetime,
        resolved_at: Optional[datetime]
    ) -> Optional[float]:
        """Days from raise to resolution, rounded to one decimal."""
        if resolved_at is None:
            return None
        days = (resolved_at - raised_at).total_seconds() / 86400
        return round(days, 1)

    @staticmethod
    def compliance_rate(total_issues: int, issues_within_sla: int) -> float:
        """Percentage of issues handled within SLA. No issues counts as full compliance."""
        if total_issues == 0:
            return 100.0
        return round(issues_within_sla / total_issues * 100, 1)

    @staticmethod
    def compliance_band(rate: float) -> ComplianceBand:
        if rate >= 80:
            return ComplianceBand.SUCCESS
        if rate >= 60:
            return ComplianceBand.WARNING
        return ComplianceBand.DANGER

    @staticmethod
    def format_time_remaining(now: datetime, sla_deadline: datetime) -> str:
        """Human readable remaining time, e.g. '2h 30m' or 'OVERDUE by 1h 15m'."""
        diff = (sla_deadline - now).total_seconds()
        overdue = diff < 0
        total_minutes = int(abs(diff) // 60)
        hours, minutes = divmod(total_minutes, 60)

        text = f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
        return f"OVERDUE by {text}" if overdue else text


# Module-level aliases for the two operations callers use most
resolve_deadline = SLACalculator.resolve_deadline
is_overdue = SLACalculator.is_overdue
