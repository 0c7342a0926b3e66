"""
Issue Application DTOs
======================

Data Transfer Objects for the issue API layer.

Request models are deliberately permissive: the engine's own validator
decides what a malformed issue is, so its error (and field name) reaches
the caller instead of a generic schema error.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.config import SenderRole
from src.issues.domain import Issue, SLACalculator


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["emergency", "urgent", "routine", "low"]
CategoryStr = Literal["maintenance", "repair", "complaint", "query", "hazard", "dispute"]
IssueStatusStr = Literal["open", "acknowledged", "in_progress", "resolved", "closed"]
SenderRoleStr = Literal["renter", "landlord", "estate_agent", "management_agency"]
ComplianceBandStr = Literal["success", "warning", "danger"]


# ========== Request DTOs ==========

class IssueCreateDTO(BaseModel):
    """Raw input for raising an issue."""
    property_id: Optional[str] = Field(None, description="Property the issue concerns")
    renter_id: Optional[str] = Field(None, description="Renter raising the issue")
    landlord_id: Optional[str] = Field(None, description="Landlord of the property")
    agency_id: Optional[str] = Field(None, description="Managing agency, if any")
    assigned_agent_id: Optional[str] = Field(None, description="Agent handling the issue")
    match_id: Optional[str] = Field(None, description="Tenancy/match the issue belongs to")
    reported_by: Optional[str] = Field(
        None,
        description="Actor raising the issue (defaults to the renter)"
    )
    category: Optional[str] = Field(None, description="Issue category")
    priority: Optional[str] = Field(None, description="Issue priority")
    subject: Optional[str] = Field(None, description="Short subject, at least 5 characters")
    description: Optional[str] = Field(None, description="Details, at least 20 characters")
    images: List[str] = Field(default_factory=list, description="Image references")
    is_health_and_safety_hazard: bool = Field(default=False)
    hazard_type: Optional[str] = None


class TransitionCreateDTO(BaseModel):
    """Request to move an issue to another status."""
    target_status: str = Field(..., description="Status to move to")
    actor_id: str = Field(..., min_length=1, description="Actor performing the transition")
    note: Optional[str] = Field(None, description="Free-text note for the audit trail")
    resolution_summary: Optional[str] = Field(None, description="Required when resolving")
    resolution_cost: Optional[float] = Field(None, description="Optional cost when resolving")


class MessageCreateDTO(BaseModel):
    """Request to append a message to an issue thread."""
    sender_id: str = Field(..., min_length=1)
    sender_role: str = Field(..., description="renter, landlord, estate_agent or management_agency")
    sender_name: Optional[str] = None
    content: str = Field(..., description="Message body")
    is_internal: bool = Field(default=False, description="Hidden from the renter when true")


class InternalNoteCreateDTO(BaseModel):
    """Request to add a landlord/agency-only note."""
    author_id: str = Field(..., min_length=1)
    content: str


class RatingCreateDTO(BaseModel):
    """Renter satisfaction rating for a resolved issue."""
    renter_id: str = Field(..., min_length=1)
    rating: int


# ========== Response DTOs ==========

class StatusHistoryEntryResponse(BaseModel):
    status: IssueStatusStr
    timestamp: datetime
    updated_by: str
    note: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    sender_role: SenderRoleStr
    sender_name: str
    content: str
    timestamp: datetime
    is_internal: bool


class InternalNoteResponse(BaseModel):
    author_id: str
    content: str
    timestamp: datetime


class ResponsiblePartyResponse(BaseModel):
    kind: Literal["landlord", "agency"]
    id: str


class IssueResponse(BaseModel):
    """Response model for a single issue."""
    id: str
    property_id: str
    renter_id: str
    landlord_id: str
    agency_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    match_id: Optional[str] = None
    responsible_party: ResponsiblePartyResponse

    category: CategoryStr
    priority: PriorityStr
    subject: str
    description: str
    images: List[str] = Field(default_factory=list)
    is_health_and_safety_hazard: bool = False
    hazard_type: Optional[str] = None

    status: IssueStatusStr
    is_overdue: bool
    sla_deadline: datetime
    sla_hours: float
    time_remaining: str = Field(..., description="e.g. '2h 30m' or 'OVERDUE by 1h'")
    is_approaching_deadline: bool

    raised_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: datetime
    response_time_hours: Optional[float] = None
    resolution_time_days: Optional[float] = None

    status_history: List[StatusHistoryEntryResponse]
    messages: List[MessageResponse]
    internal_notes: List[InternalNoteResponse] = Field(default_factory=list)

    resolution_summary: Optional[str] = None
    resolution_cost: Optional[float] = None
    renter_satisfaction_rating: Optional[int] = None
    version: int

    @classmethod
    def from_domain(
        cls,
        issue: Issue,
        now: datetime,
        viewer_role: Optional[SenderRole] = None,
        approaching_fraction: float = 0.25
    ) -> "IssueResponse":
        """Build the response, hiding internal entries from renters."""
        is_renter = viewer_role is not None and SenderRole(viewer_role) == SenderRole.RENTER
        approaching = (
            not issue.is_terminal
            and SLACalculator.is_approaching_deadline(
                now, issue.raised_at, issue.sla_deadline, approaching_fraction
            )
        )

        return cls(
            id=issue.id,
            property_id=issue.property_id,
            renter_id=issue.renter_id,
            landlord_id=issue.landlord_id,
            agency_id=issue.agency_id,
            assigned_agent_id=issue.assigned_agent_id,
            match_id=issue.match_id,
            responsible_party=ResponsiblePartyResponse(
                kind=issue.responsible_party.kind,
                id=issue.responsible_party.party_id
            ),
            category=issue.category.value,
            priority=issue.priority.value,
            subject=issue.subject,
            description=issue.description,
            images=list(issue.images),
            is_health_and_safety_hazard=issue.is_health_and_safety_hazard,
            hazard_type=issue.hazard_type,
            status=issue.status.value,
            is_overdue=issue.is_overdue,
            sla_deadline=issue.sla_deadline,
            sla_hours=issue.sla_hours,
            time_remaining=SLACalculator.format_time_remaining(now, issue.sla_deadline),
            is_approaching_deadline=approaching,
            raised_at=issue.raised_at,
            acknowledged_at=issue.acknowledged_at,
            resolved_at=issue.resolved_at,
            closed_at=issue.closed_at,
            updated_at=issue.updated_at,
            response_time_hours=issue.response_time_hours,
            resolution_time_days=issue.resolution_time_days,
            status_history=[
                StatusHistoryEntryResponse(
                    status=entry.status.value,
                    timestamp=entry.timestamp,
                    updated_by=entry.updated_by,
                    note=entry.note
                )
                for entry in issue.status_history
            ],
            messages=[
                MessageResponse(
                    id=m.id,
                    sender_id=m.sender_id,
                    sender_role=m.sender_role.value,
                    sender_name=m.sender_name,
                    content=m.content,
                    timestamp=m.timestamp,
                    is_internal=m.is_internal
                )
                for m in issue.visible_messages(viewer_role)
            ],
            internal_notes=[] if is_renter else [
                InternalNoteResponse(
                    author_id=n.author_id,
                    content=n.content,
                    timestamp=n.timestamp
                )
                for n in issue.internal_notes
            ],
            resolution_summary=issue.resolution_summary,
            resolution_cost=issue.resolution_cost,
            renter_satisfaction_rating=issue.renter_satisfaction_rating,
            version=issue.version
        )


class IssueListResponse(BaseModel):
    issues: List[IssueResponse]
    total_count: int


class AgencyPerformanceResponse(BaseModel):
    """SLA performance summary for a management agency."""
    agency_id: str
    total_issues: int
    open_issues: int
    resolved_issues: int
    overdue_open_issues: int
    approaching_deadline_issues: int
    avg_response_time_hours: float
    avg_resolution_time_days: float
    compliance_rate: float = Field(..., description="Percentage of issues that never breached SLA")
    compliance_band: ComplianceBandStr


class SweepResponse(BaseModel):
    """Outcome of one overdue sweep."""
    evaluated: int
    newly_overdue: int
    updated: int
    conflicts: int
    newly_overdue_ids: List[str] = Field(default_factory=list)
