"""
Issue Application Layer
=======================

Application layer for the issue lifecycle module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.issues.application.dto import (
    IssueCreateDTO,
    TransitionCreateDTO,
    MessageCreateDTO,
    InternalNoteCreateDTO,
    RatingCreateDTO,
    IssueResponse,
    IssueListResponse,
    MessageResponse,
    StatusHistoryEntryResponse,
    AgencyPerformanceResponse,
    SweepResponse,
)
from src.issues.application.services import (
    IssueService,
    OverdueSweepService,
    SLAReportService,
    IIssueRepository,
    IAgencyConfigProvider,
    build_state_machine,
    utc_now,
)

__all__ = [
    # DTOs
    "IssueCreateDTO",
    "TransitionCreateDTO",
    "MessageCreateDTO",
    "InternalNoteCreateDTO",
    "RatingCreateDTO",
    "IssueResponse",
    "IssueListResponse",
    "MessageResponse",
    "StatusHistoryEntryResponse",
    "AgencyPerformanceResponse",
    "SweepResponse",
    # Services
    "IssueService",
    "OverdueSweepService",
    "SLAReportService",
    "build_state_machine",
    "utc_now",
    # Repository Interfaces
    "IIssueRepository",
    "IAgencyConfigProvider",
]
