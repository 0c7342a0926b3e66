"""
Issue Domain Entities
=====================

Pure Python domain entities for the tenancy issue lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Iterable, Iterator, List, Optional, TypeVar
from uuid import uuid4

from src.config import (
    ActorRole,
    IssueCategory,
    IssuePriority,
    IssueStatus,
    SenderRole,
    TERMINAL_STATUSES,
)
from src.core import DomainException, UnauthorizedActorException, ValidationException
from src.issues.domain.validation import IssueValidator, read_field
from src.issues.domain.value_objects import (
    ResponsibleParty,
    SLACalculator,
    SLAConfiguration,
    resolve_responsible_party,
)

T = TypeVar("T")

# Thread roles each ticket capability may post under
SENDER_ROLES_BY_ACTOR = {
    ActorRole.RENTER: frozenset({SenderRole.RENTER}),
    ActorRole.LANDLORD: frozenset({SenderRole.LANDLORD}),
    ActorRole.AGENCY: frozenset({SenderRole.ESTATE_AGENT, SenderRole.MANAGEMENT_AGENCY}),
}


class AppendOnlyLog(Generic[T]):
    """
    Ordered sequence that can only grow.

    Entries are exposed read-only (iteration, indexing, len); there is no
    way to replace or remove an entry once appended.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[T] = ()):
        self._items: List[T] = list(items)

    def append(self, item: T) -> None:
        self._items.append(item)

    @property
    def last(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._items[index])
        return self._items[index]

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AppendOnlyLog):
            return self._items == other._items
        return NotImplemented

    def __repr__(self) -> str:
        return f"AppendOnlyLog({self._items!r})"


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One audit-trail record: who moved the ticket to which status, and when."""
    status: IssueStatus
    timestamp: datetime
    updated_by: str
    note: Optional[str] = None


@dataclass(frozen=True)
class IssueMessage:
    """A single entry in the ticket conversation."""
    id: str
    sender_id: str
    sender_role: SenderRole
    sender_name: str
    content: str
    timestamp: datetime
    is_internal: bool = False


@dataclass(frozen=True)
class InternalNote:
    """Landlord/agency-only note, kept apart from the conversation."""
    author_id: str
    content: str
    timestamp: datetime


@dataclass
class Issue:
    """
    Issue entity representing a maintenance request or complaint
    raised against a tenancy.

    Mutated only through its own methods and the state machine; the
    deadline, raise time and audit trail never change once written.
    """

    # Core attributes
    id: str
    property_id: str
    renter_id: str
    landlord_id: str
    category: IssueCategory
    priority: IssuePriority
    subject: str
    description: str

    # SLA
    raised_at: datetime
    sla_deadline: datetime
    sla_hours: float
    responsible_party: ResponsibleParty

    # Optional parties
    agency_id: Optional[str] = None
    assigned_agent_id: Optional[str] = None
    match_id: Optional[str] = None

    # Content
    images: List[str] = field(default_factory=list)
    is_health_and_safety_hazard: bool = False
    hazard_type: Optional[str] = None

    # State
    status: IssueStatus = IssueStatus.OPEN
    is_overdue: bool = False
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Append-only sequences
    status_history: AppendOnlyLog = field(default_factory=AppendOnlyLog)
    messages: AppendOnlyLog = field(default_factory=AppendOnlyLog)
    internal_notes: AppendOnlyLog = field(default_factory=AppendOnlyLog)

    # Resolution
    resolution_summary: Optional[str] = None
    resolution_cost: Optional[float] = None
    renter_satisfaction_rating: Optional[int] = None

    # Optimistic concurrency
    version: int = 1

    def __post_init__(self):
        """Validate timestamps on initialization."""
        if self.updated_at is None:
            self.updated_at = self.raised_at

        if self.sla_deadline < self.raised_at:
            raise ValueError("sla_deadline cannot be before raised_at")

        for name in ("acknowledged_at", "resolved_at", "closed_at"):
            value = getattr(self, name)
            if value is not None and value < self.raised_at:
                raise ValueError(f"{name} cannot be before raised_at")

    # ========== Creation ==========

    @classmethod
    def raise_new(
        cls,
        data: Any,
        now: datetime,
        agency_config: Optional[SLAConfiguration] = None,
        issue_id: Optional[str] = None
    ) -> "Issue":
        """
        Validate raw input and build a freshly opened issue.

        Raises:
            ValidationException: If the input is malformed
        """
        category, priority = IssueValidator.validate(data)

        landlord_id = str(read_field(data, "landlord_id"))
        renter_id = str(read_field(data, "renter_id"))
        agency_id = read_field(data, "agency_id") or None
        reported_by = read_field(data, "reported_by") or renter_id

        sla_hours = SLACalculator.resolve_hours(priority, agency_config)
        sla_deadline = SLACalculator.resolve_deadline(now, priority, agency_config)

        issue = cls(
            id=issue_id or str(uuid4()),
            property_id=str(read_field(data, "property_id")),
            renter_id=renter_id,
            landlord_id=landlord_id,
            agency_id=agency_id,
            assigned_agent_id=read_field(data, "assigned_agent_id") or None,
            match_id=read_field(data, "match_id") or None,
            category=category,
            priority=priority,
            subject=str(read_field(data, "subject")).strip(),
            description=str(read_field(data, "description")).strip(),
            images=list(read_field(data, "images") or []),
            is_health_and_safety_hazard=bool(read_field(data, "is_health_and_safety_hazard")),
            hazard_type=read_field(data, "hazard_type") or None,
            raised_at=now,
            sla_deadline=sla_deadline,
            sla_hours=sla_hours,
            responsible_party=resolve_responsible_party(landlord_id, agency_id, agency_config),
        )

        reporter_role = issue.actor_role(str(reported_by))
        if reporter_role is None:
            raise ValidationException(
                "Issue must be reported by one of its parties", field="reported_by"
            )
        issue.status_history.append(
            StatusHistoryEntry(
                status=IssueStatus.OPEN,
                timestamp=now,
                updated_by=str(reported_by),
                note=f"Issue reported by {reporter_role.value}",
            )
        )
        return issue

    # ========== Queries ==========

    @property
    def is_terminal(self) -> bool:
        """Resolved or closed: overdue no longer moves."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_closed(self) -> bool:
        return self.status == IssueStatus.CLOSED

    @property
    def response_time_hours(self) -> Optional[float]:
        return SLACalculator.response_time_hours(self.raised_at, self.acknowledged_at)

    @property
    def resolution_time_days(self) -> Optional[float]:
        return SLACalculator.resolution_time_days(self.raised_at, self.resolved_at)

    def actor_role(self, actor_id: str) -> Optional[ActorRole]:
        """Capability the given actor holds on this ticket, if any."""
        if not actor_id:
            return None
        if actor_id == self.renter_id:
            return ActorRole.RENTER
        if actor_id in (self.agency_id, self.assigned_agent_id):
            return ActorRole.AGENCY
        if actor_id == self.landlord_id:
            return ActorRole.LANDLORD
        return None

    def visible_messages(self, viewer_role: Optional[SenderRole] = None) -> List[IssueMessage]:
        """Messages a viewer may see. Renters never see internal messages."""
        if viewer_role is not None and SenderRole(viewer_role) == SenderRole.RENTER:
            return [m for m in self.messages if not m.is_internal]
        return list(self.messages)

    # ========== Overdue ==========

    def refresh_overdue(self, now: datetime) -> bool:
        """Recompute the overdue flag; terminal tickets keep their last value."""
        self.is_overdue = SLACalculator.is_overdue(
            now, self.status, self.sla_deadline, self.is_overdue
        )
        return self.is_overdue

    # ========== Audit trail ==========

    def apply_status(
        self,
        status: IssueStatus,
        timestamp: datetime,
        updated_by: str,
        note: Optional[str] = None
    ) -> StatusHistoryEntry:
        """
        Append one audit entry and move the ticket to `status`.

        Callers are expected to have validated the transition already;
        this only guards the time ordering of the trail.
        """
        self.ensure_not_before_last_event(timestamp)
        entry = StatusHistoryEntry(
            status=IssueStatus(status),
            timestamp=timestamp,
            updated_by=updated_by,
            note=note,
        )
        self.status_history.append(entry)
        self.status = entry.status
        self.updated_at = timestamp
        return entry

    def ensure_not_before_last_event(self, timestamp: datetime) -> None:
        if timestamp < self.raised_at:
            raise DomainException(
                "Timestamp cannot be before the issue was raised",
                {"issue_id": self.id, "timestamp": timestamp.isoformat()}
            )
        last = self.status_history.last
        if last is not None and timestamp < last.timestamp:
            raise DomainException(
                "Timestamp cannot be before the latest status change",
                {"issue_id": self.id, "timestamp": timestamp.isoformat()}
            )

    # ========== Conversation ==========

    def append_message(
        self,
        sender_id: str,
        sender_role: SenderRole,
        content: str,
        is_internal: bool,
        now: datetime,
        sender_name: Optional[str] = None
    ) -> IssueMessage:
        """
        Append a message to the thread.

        Never touches status or deadlines. Allowed in every status.
        The sender must be a party to the ticket and the declared role
        must match the capability they hold on it.
        """
        if not sender_id or not str(sender_id).strip():
            raise ValidationException("Sender ID is required", field="sender_id")
        try:
            role = SenderRole(getattr(sender_role, "value", sender_role))
        except ValueError:
            raise ValidationException(
                f"Sender role '{sender_role}' is not recognised", field="sender_role"
            )
        if not content or not content.strip():
            raise ValidationException("Message content is required", field="content")

        actor = self.actor_role(sender_id)
        if actor is None or role not in SENDER_ROLES_BY_ACTOR[actor]:
            raise UnauthorizedActorException(sender_id, "append_message")
        if is_internal and actor == ActorRole.RENTER:
            raise ValidationException(
                "Renters cannot post internal messages", field="is_internal"
            )

        message = IssueMessage(
            id=str(uuid4()),
            sender_id=sender_id,
            sender_role=role,
            sender_name=sender_name or role.value.replace("_", " ").title(),
            content=content.strip(),
            timestamp=now,
            is_internal=bool(is_internal),
        )
        self.messages.append(message)
        self.updated_at = max(self.updated_at or now, now)
        return message

    def add_internal_note(self, author_id: str, content: str, now: datetime) -> InternalNote:
        """Record a landlord/agency-only note."""
        role = self.actor_role(author_id)
        if role not in (ActorRole.LANDLORD, ActorRole.AGENCY):
            raise UnauthorizedActorException(author_id, "add_internal_note")
        if not content or not content.strip():
            raise ValidationException("Note content is required", field="content")

        note = InternalNote(author_id=author_id, content=content.strip(), timestamp=now)
        self.internal_notes.append(note)
        self.updated_at = max(self.updated_at or now, now)
        return note

    # ========== Resolution feedback ==========

    def rate_resolution(self, renter_id: str, rating: int, now: datetime) -> None:
        """Renter's 1-5 satisfaction score, accepted once the ticket is resolved or closed."""
        if self.actor_role(renter_id) != ActorRole.RENTER:
            raise UnauthorizedActorException(renter_id, "rate_resolution")
        if not self.is_terminal:
            raise DomainException(
                "Only resolved or closed issues can be rated",
                {"issue_id": self.id, "status": self.status.value}
            )
        if self.renter_satisfaction_rating is not None:
            raise DomainException(
                "Issue has already been rated",
                {"issue_id": self.id}
            )
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationException("Rating must be an integer from 1 to 5", field="rating")

        self.renter_satisfaction_rating = rating
        self.updated_at = max(self.updated_at or now, now)
