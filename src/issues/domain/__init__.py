"""
Issue Domain Layer
==================

Domain layer for the issue lifecycle module.

Contains:
- Entities: Issue plus its append-only audit trail, messages and notes
- Value Objects: SLAConfiguration, responsible-party variants, SLACalculator
- Validation: fail-fast checks for creation input
- State Machine: legal status transitions and their side effects

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.issues.domain.entities import (
    AppendOnlyLog,
    InternalNote,
    Issue,
    IssueMessage,
    StatusHistoryEntry,
)
from src.issues.domain.state_machine import (
    IssueStateMachine,
    TransitionRequest,
    TRANSITION_RULES,
)
from src.issues.domain.validation import IssueValidator
from src.issues.domain.value_objects import (
    AgencyParty,
    LandlordParty,
    ResponsibleParty,
    SLACalculator,
    SLAConfiguration,
    is_overdue,
    resolve_deadline,
    resolve_responsible_party,
)

__all__ = [
    # Entities
    "AppendOnlyLog",
    "InternalNote",
    "Issue",
    "IssueMessage",
    "StatusHistoryEntry",
    # State machine
    "IssueStateMachine",
    "TransitionRequest",
    "TRANSITION_RULES",
    # Validation
    "IssueValidator",
    # Value Objects & Services
    "AgencyParty",
    "LandlordParty",
    "ResponsibleParty",
    "SLACalculator",
    "SLAConfiguration",
    "is_overdue",
    "resolve_deadline",
    "resolve_responsible_party",
]
