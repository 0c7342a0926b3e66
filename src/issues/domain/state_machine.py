"""
Issue Status Transition Machine
===============================

Legal lifecycle moves and who may make them:

    open -> acknowledged                landlord / agency
    open | acknowledged -> in_progress  landlord / agency
    acknowledged | in_progress -> resolved
                                        landlord / agency, needs a summary
    resolved -> closed                  renter any time, landlord / agency
                                        once the grace period has passed
    resolved -> acknowledged | in_progress
                                        renter disputing the resolution

Everything is checked before the ticket is touched, so a rejected
transition leaves no trace.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional, Set, Tuple

from src.config import ActorRole, IssueStatus
from src.core import (
    IllegalTransitionException,
    UnauthorizedActorException,
    ValidationException,
)
from src.issues.domain.entities import Issue, StatusHistoryEntry

_STAFF = frozenset({ActorRole.LANDLORD, ActorRole.AGENCY})
_RENTER = frozenset({ActorRole.RENTER})
_ANY_PARTY = _STAFF | _RENTER

DISPUTE_NOTE = "Resolution disputed by renter"

TRANSITION_RULES: Dict[Tuple[IssueStatus, IssueStatus], FrozenSet[ActorRole]] = {
    (IssueStatus.OPEN, IssueStatus.ACKNOWLEDGED): _STAFF,
    (IssueStatus.OPEN, IssueStatus.IN_PROGRESS): _STAFF,
    (IssueStatus.ACKNOWLEDGED, IssueStatus.IN_PROGRESS): _STAFF,
    (IssueStatus.ACKNOWLEDGED, IssueStatus.RESOLVED): _STAFF,
    (IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED): _STAFF,
    (IssueStatus.RESOLVED, IssueStatus.CLOSED): _ANY_PARTY,
    (IssueStatus.RESOLVED, IssueStatus.ACKNOWLEDGED): _RENTER,
    (IssueStatus.RESOLVED, IssueStatus.IN_PROGRESS): _RENTER,
}


@dataclass(frozen=True)
class TransitionRequest:
    """Everything an actor supplies when moving a ticket."""
    target_status: IssueStatus
    actor_id: str
    note: Optional[str] = None
    resolution_summary: Optional[str] = None
    resolution_cost: Optional[float] = None


class IssueStateMachine:
    """Validates and applies status transitions on an Issue."""

    def __init__(self, close_grace_period: timedelta = timedelta(hours=72)):
        self.close_grace_period = close_grace_period

    @staticmethod
    def allowed_targets(status: IssueStatus) -> Set[IssueStatus]:
        status = IssueStatus(status)
        return {target for (source, target) in TRANSITION_RULES if source == status}

    def validate(self, issue: Issue, request: TransitionRequest, now: datetime) -> IssueStatus:
        """
        Check a transition without mutating anything.

        Returns:
            The parsed target status

        Raises:
            ValidationException: Unknown target, missing summary, bad cost
            IllegalTransitionException: Pair not in the transition table
            UnauthorizedActorException: Actor lacks the capability
        """
        try:
            target = IssueStatus(getattr(request.target_status, "value", request.target_status))
        except ValueError:
            raise ValidationException(
                f"Unknown status '{request.target_status}'", field="target_status"
            )

        allowed_roles = TRANSITION_RULES.get((issue.status, target))
        if allowed_roles is None:
            raise IllegalTransitionException(issue.status, target)

        role = issue.actor_role(request.actor_id)
        if role not in allowed_roles:
            raise UnauthorizedActorException(request.actor_id, target)

        if target == IssueStatus.RESOLVED:
            if not request.resolution_summary or not request.resolution_summary.strip():
                raise ValidationException(
                    "A resolution summary is required to resolve an issue",
                    field="resolution_summary"
                )
            if request.resolution_cost is not None and request.resolution_cost < 0:
                raise ValidationException(
                    "Resolution cost cannot be negative", field="resolution_cost"
                )

        if target == IssueStatus.CLOSED and role != ActorRole.RENTER:
            available_at = issue.resolved_at + self.close_grace_period
            if now < available_at:
                raise UnauthorizedActorException(
                    request.actor_id,
                    target,
                    {
                        "actor_id": request.actor_id,
                        "action": target.value,
                        "reason": "renter confirmation grace period has not elapsed",
                        "available_at": available_at.isoformat(),
                    }
                )

        issue.ensure_not_before_last_event(now)
        return target

    def apply(self, issue: Issue, request: TransitionRequest, now: datetime) -> StatusHistoryEntry:
        """
        Validate, then apply the transition and append its audit entry.

        Overdue is evaluated against `now` under the outgoing status first,
        which is the value that freezes when the ticket enters resolved.
        """
        target = self.validate(issue, request, now)
        previous = issue.status
        note = request.note

        issue.refresh_overdue(now)

        if target == IssueStatus.ACKNOWLEDGED and issue.acknowledged_at is None:
            issue.acknowledged_at = now

        if target == IssueStatus.RESOLVED:
            issue.resolved_at = now
            issue.resolution_summary = request.resolution_summary.strip()
            if request.resolution_cost is not None:
                issue.resolution_cost = request.resolution_cost

        if target == IssueStatus.CLOSED:
            issue.closed_at = now

        if previous == IssueStatus.RESOLVED and target != IssueStatus.CLOSED:
            issue.resolved_at = None
            note = f"{DISPUTE_NOTE}: {note}" if note else DISPUTE_NOTE

        entry = issue.apply_status(target, now, request.actor_id, note)

        if not issue.is_terminal:
            issue.refresh_overdue(now)

        return entry
