"""
Issue Controllers (API Routes)
==============================

FastAPI routes for the tenancy issue lifecycle.

Controllers are thin - they delegate to application services. Engine
exceptions propagate to the handlers in src.shared.api.middleware, which
turn each kind into its own status code.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import ActorRole, SenderRole, settings
from src.core import ValidationException
from src.infrastructure.database import get_session
from src.issues.application import (
    AgencyPerformanceResponse,
    IAgencyConfigProvider,
    IIssueRepository,
    InternalNoteCreateDTO,
    IssueCreateDTO,
    IssueListResponse,
    IssueResponse,
    IssueService,
    MessageCreateDTO,
    MessageResponse,
    OverdueSweepService,
    RatingCreateDTO,
    SLAReportService,
    SweepResponse,
    TransitionCreateDTO,
    build_state_machine,
    utc_now,
)
from src.issues.application.services import Clock
from src.issues.infrastructure import SQLAlchemyAgencyConfigProvider, SQLAlchemyIssueRepository
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/issues", tags=["Issues"])


# ========== Example payloads for Swagger ==========

ISSUE_CREATE_EXAMPLE = {
    "property_id": "property-17",
    "renter_id": "renter-3",
    "landlord_id": "landlord-9",
    "agency_id": "agency-42",
    "match_id": "match-88",
    "category": "maintenance",
    "priority": "urgent",
    "subject": "Boiler not working",
    "description": "No hot water or heating since last night, boiler shows error E119."
}

ERROR_RESPONSE_EXAMPLE = {
    "error": "illegal_transition",
    "detail": "Cannot transition issue from 'open' to 'closed'",
    "details": {"current_status": "open", "target_status": "closed"},
    "correlation_id": "5f0c6c1e-7c61-4d0e-9a55-0d0f4b8e2f11"
}

ERROR_RESPONSES = {
    400: {"description": "Malformed input"},
    403: {"description": "Actor not permitted"},
    404: {"description": "Issue not found"},
    409: {
        "description": "Illegal transition or concurrent modification",
        "content": {"application/json": {"example": ERROR_RESPONSE_EXAMPLE}}
    },
}


# ========== Dependencies ==========

def get_clock() -> Clock:
    return utc_now


async def get_issue_repository(
    session: AsyncSession = Depends(get_session)
) -> IIssueRepository:
    return SQLAlchemyIssueRepository(session)


async def get_config_provider(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> Optional[IAgencyConfigProvider]:
    """Agency SLA source selected by AGENCY_CONFIG_BACKEND."""
    if settings.agency_config_backend == "yaml":
        return getattr(request.app.state, "agency_config_manager", None)
    return SQLAlchemyAgencyConfigProvider(session)


async def get_issue_service(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    config_provider: Optional[IAgencyConfigProvider] = Depends(get_config_provider),
    clock: Clock = Depends(get_clock)
) -> IssueService:
    return IssueService(
        issue_repo,
        config_provider,
        state_machine=build_state_machine(settings.close_grace_period_hours),
        clock=clock
    )


def _viewer_role(value: Optional[str]) -> Optional[SenderRole]:
    if value is None:
        return None
    try:
        return SenderRole(value)
    except ValueError:
        raise ValidationException(f"Unknown viewer role '{value}'", field="viewer_role")


def _respond(service: IssueService, issue, viewer_role: Optional[SenderRole] = None) -> IssueResponse:
    return IssueResponse.from_domain(
        issue,
        service.now(),
        viewer_role=viewer_role,
        approaching_fraction=settings.approaching_deadline_fraction
    )


def _actor_view(issue, actor_id: str) -> Optional[SenderRole]:
    """Renter-facing view when the acting party is the ticket's renter."""
    if issue.actor_role(actor_id) == ActorRole.RENTER:
        return SenderRole.RENTER
    return None


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise an issue",
    description="""
    Raise a new issue against a property.

    The SLA deadline is fixed here from the priority and the managing
    agency's configuration, falling back to platform defaults:

    | Priority  | Default SLA |
    |-----------|-------------|
    | emergency | 4 hours     |
    | urgent    | 24 hours    |
    | routine   | 72 hours    |
    | low       | 7 days      |

    Subject needs at least 5 characters, description at least 20.
    """,
    responses={
        201: {
            "description": "Issue raised",
        },
        400: ERROR_RESPONSES[400],
    },
    openapi_extra={"requestBody": {"content": {"application/json": {"example": ISSUE_CREATE_EXAMPLE}}}}
)
async def create_issue(
    request: IssueCreateDTO,
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.create_issue(request)
    return _respond(service, issue)


@router.get(
    "",
    response_model=IssueListResponse,
    summary="List issues",
    description="""
    List issues for exactly one of `property_id`, `match_id` or `agency_id`,
    newest first. The overdue flag is re-evaluated at read time.
    """,
    responses={400: ERROR_RESPONSES[400]}
)
async def list_issues(
    property_id: Optional[str] = Query(None, description="Filter by property"),
    match_id: Optional[str] = Query(None, description="Filter by tenancy/match"),
    agency_id: Optional[str] = Query(None, description="Filter by managing agency"),
    viewer_role: Optional[str] = Query(None, description="Role of the caller; renters don't see internal entries"),
    service: IssueService = Depends(get_issue_service)
):
    filters = {k: v for k, v in (
        ("property_id", property_id),
        ("match_id", match_id),
        ("agency_id", agency_id),
    ) if v}
    if len(filters) != 1:
        raise ValidationException(
            "Provide exactly one of property_id, match_id or agency_id",
            field="filter"
        )

    role = _viewer_role(viewer_role)
    if property_id:
        issues = await service.list_issues_for_property(property_id)
    elif match_id:
        issues = await service.list_issues_for_match(match_id)
    else:
        issues = await service.list_issues_for_agency(agency_id)

    return IssueListResponse(
        issues=[_respond(service, issue, role) for issue in issues],
        total_count=len(issues)
    )


@router.get(
    "/agencies/{agency_id}/performance",
    response_model=AgencyPerformanceResponse,
    summary="Agency SLA performance",
    description="""
    SLA compliance figures for a management agency: open and overdue
    counts, average acknowledgement and resolution times, and the share of
    issues that stayed within SLA (`success` at 80%+, `warning` at 60%+,
    otherwise `danger`).
    """
)
async def agency_performance(
    agency_id: str,
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    clock: Clock = Depends(get_clock)
):
    report_service = SLAReportService(
        issue_repo,
        clock=clock,
        approaching_fraction=settings.approaching_deadline_fraction
    )
    return await report_service.agency_performance(agency_id)


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run an overdue sweep",
    description="""
    Re-evaluate the overdue flag of every open issue and persist the ones
    that changed. The same job runs in the background every
    `OVERDUE_SWEEP_INTERVAL` seconds.
    """
)
async def run_sweep(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    clock: Clock = Depends(get_clock)
):
    return await OverdueSweepService(issue_repo, clock=clock).sweep()


@router.get(
    "/{issue_id}",
    response_model=IssueResponse,
    summary="Get an issue",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_issue(
    issue_id: str,
    viewer_role: Optional[str] = Query(None, description="Role of the caller; renters don't see internal entries"),
    service: IssueService = Depends(get_issue_service)
):
    role = _viewer_role(viewer_role)
    issue = await service.get_issue(issue_id)
    return _respond(service, issue, role)


@router.post(
    "/{issue_id}/transitions",
    response_model=IssueResponse,
    summary="Change issue status",
    description="""
    Move an issue along its lifecycle:

    - `open` → `acknowledged` | `in_progress` (landlord/agency)
    - `acknowledged` → `in_progress` | `resolved` (landlord/agency)
    - `in_progress` → `resolved` (landlord/agency, `resolution_summary` required)
    - `resolved` → `closed` (renter any time; landlord/agency after the grace period)
    - `resolved` → `acknowledged` | `in_progress` (renter disputing the resolution)

    A 409 with `concurrency_conflict` means the issue changed since it was
    read: re-fetch, re-check and retry.
    """,
    responses=ERROR_RESPONSES
)
async def transition_issue(
    issue_id: str,
    request: TransitionCreateDTO,
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.transition_status(
        issue_id,
        request.target_status,
        request.actor_id,
        note=request.note,
        resolution_summary=request.resolution_summary,
        resolution_cost=request.resolution_cost
    )
    return _respond(service, issue, _actor_view(issue, request.actor_id))


@router.post(
    "/{issue_id}/messages",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message",
    description="Append a message to the issue thread. Status and deadline are unaffected.",
    responses=ERROR_RESPONSES
)
async def post_message(
    issue_id: str,
    request: MessageCreateDTO,
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.append_message(
        issue_id,
        request.sender_id,
        request.sender_role,
        request.content,
        is_internal=request.is_internal,
        sender_name=request.sender_name
    )
    return _respond(service, issue, _viewer_role(request.sender_role))


@router.get(
    "/{issue_id}/messages",
    response_model=list[MessageResponse],
    summary="Read the message thread",
    responses={404: ERROR_RESPONSES[404]}
)
async def list_messages(
    issue_id: str,
    viewer_role: Optional[str] = Query(None, description="Role of the caller; renters don't see internal messages"),
    service: IssueService = Depends(get_issue_service)
):
    role = _viewer_role(viewer_role)
    issue = await service.get_issue(issue_id)
    return _respond(service, issue, role).messages


@router.post(
    "/{issue_id}/internal-notes",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an internal note",
    description="Landlord/agency-only note, never shown to the renter.",
    responses=ERROR_RESPONSES
)
async def add_internal_note(
    issue_id: str,
    request: InternalNoteCreateDTO,
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.add_internal_note(issue_id, request.author_id, request.content)
    return _respond(service, issue)


@router.post(
    "/{issue_id}/rating",
    response_model=IssueResponse,
    summary="Rate the resolution",
    description="Renter's 1-5 satisfaction score for a resolved or closed issue. Accepted once.",
    responses=ERROR_RESPONSES
)
async def rate_issue(
    issue_id: str,
    request: RatingCreateDTO,
    service: IssueService = Depends(get_issue_service)
):
    issue = await service.rate_resolution(issue_id, request.renter_id, request.rating)
    return _respond(service, issue, SenderRole.RENTER)


# Export router
issues_router = router
