"""
Unit tests for issue creation input validation and the new-issue factory.
"""

from datetime import timedelta

import pytest

from src.config import IssueCategory, IssuePriority, IssueStatus
from src.core import ValidationException
from src.issues.application import IssueCreateDTO
from src.issues.domain import AgencyParty, Issue, IssueValidator, LandlordParty, SLAConfiguration
from tests.conftest import AGENCY, LANDLORD, RENTER, T0


class TestIssueValidator:
    """Fail-fast validation with one error per call."""

    # ─────────────────────────────────────────────────────────────────────────────
    # REQUIRED FIELDS
    # ─────────────────────────────────────────────────────────────────────────────

    @pytest.mark.parametrize("field,message", [
        ("property_id", "Property ID is required"),
        ("renter_id", "Renter ID is required"),
        ("landlord_id", "Landlord ID is required"),
        ("category", "Issue category is required"),
        ("priority", "Issue priority is required"),
    ])
    def test_missing_required_field(self, issue_data, field, message):
        data = {**issue_data, field: None}

        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate(data)

        assert exc_info.value.field == field
        assert exc_info.value.message == message

    def test_blank_identifier_is_missing(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate({**issue_data, "renter_id": "   "})

        assert exc_info.value.field == "renter_id"

    def test_first_failure_wins(self, issue_data):
        """Property is checked before subject."""
        data = {**issue_data, "property_id": "", "subject": "x"}

        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate(data)

        assert exc_info.value.field == "property_id"

    def test_unknown_category_lists_allowed_values(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate({**issue_data, "category": "plumbing"})

        assert exc_info.value.field == "category"
        assert "maintenance" in exc_info.value.message

    def test_unknown_priority(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate({**issue_data, "priority": "critical"})

        assert exc_info.value.field == "priority"

    # ─────────────────────────────────────────────────────────────────────────────
    # LENGTH BOUNDARIES
    # ─────────────────────────────────────────────────────────────────────────────

    def test_subject_of_four_characters_fails(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate({**issue_data, "subject": "Leak"})

        assert exc_info.value.message == "Subject must be at least 5 characters long"

    def test_subject_of_five_characters_passes(self, issue_data):
        IssueValidator.validate({**issue_data, "subject": "Leaky"})

    def test_subject_is_trimmed_before_counting(self, issue_data):
        with pytest.raises(ValidationException):
            IssueValidator.validate({**issue_data, "subject": "  Leak   "})

    def test_description_of_nineteen_characters_fails(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            IssueValidator.validate({**issue_data, "description": "x" * 19})

        assert exc_info.value.field == "description"
        assert exc_info.value.message == "Description must be at least 20 characters long"

    def test_description_of_twenty_characters_passes(self, issue_data):
        IssueValidator.validate({**issue_data, "description": "x" * 20})

    # ─────────────────────────────────────────────────────────────────────────────
    # INPUT SHAPES
    # ─────────────────────────────────────────────────────────────────────────────

    def test_returns_parsed_enums(self, issue_data):
        category, priority = IssueValidator.validate(issue_data)

        assert category == IssueCategory.MAINTENANCE
        assert priority == IssuePriority.URGENT

    def test_accepts_request_dto(self, issue_data):
        category, priority = IssueValidator.validate(IssueCreateDTO(**issue_data))

        assert priority == IssuePriority.URGENT


class TestRaiseNewIssue:
    """Issue.raise_new builds an open ticket with one audit entry."""

    def test_new_issue_is_open_with_initial_entry(self, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)

        assert issue.status == IssueStatus.OPEN
        assert issue.raised_at == T0
        assert issue.updated_at == T0
        assert issue.is_overdue is False
        assert issue.version == 1
        assert len(issue.status_history) == 1

        entry = issue.status_history[0]
        assert entry.status == IssueStatus.OPEN
        assert entry.timestamp == T0
        assert entry.updated_by == RENTER
        assert entry.note == "Issue reported by renter"

    def test_deadline_and_party_without_agency(self, issue_data):
        issue = Issue.raise_new(issue_data, now=T0)

        assert issue.sla_deadline == T0 + timedelta(hours=24)
        assert issue.sla_hours == 24.0
        assert isinstance(issue.responsible_party, LandlordParty)

    def test_deadline_and_party_with_agency_config(self, agency_issue_data):
        config = SLAConfiguration(urgent_response_hours=12)
        issue = Issue.raise_new(agency_issue_data, now=T0, agency_config=config)

        assert issue.sla_deadline == T0 + timedelta(hours=12)
        assert isinstance(issue.responsible_party, AgencyParty)
        assert issue.responsible_party.party_id == AGENCY

    def test_reported_by_agency(self, agency_issue_data):
        issue = Issue.raise_new({**agency_issue_data, "reported_by": AGENCY}, now=T0)

        assert issue.status_history[0].updated_by == AGENCY
        assert issue.status_history[0].note == "Issue reported by agency"

    def test_reported_by_landlord(self, issue_data):
        issue = Issue.raise_new({**issue_data, "reported_by": LANDLORD}, now=T0)

        assert issue.status_history[0].updated_by == LANDLORD
        assert issue.status_history[0].note == "Issue reported by landlord"

    def test_reporter_must_be_a_party(self, issue_data):
        with pytest.raises(ValidationException) as exc_info:
            Issue.raise_new({**issue_data, "reported_by": "passer-by"}, now=T0)

        assert exc_info.value.field == "reported_by"

    def test_text_fields_are_trimmed(self, issue_data):
        issue = Issue.raise_new({**issue_data, "subject": "  Boiler broken  "}, now=T0)

        assert issue.subject == "Boiler broken"

    def test_invalid_input_raises(self, issue_data):
        with pytest.raises(ValidationException):
            Issue.raise_new({**issue_data, "priority": None}, now=T0)

    def test_status_history_is_append_only(self, open_issue):
        history = open_issue.status_history

        assert not hasattr(history, "remove")
        assert isinstance(history[0:1], tuple)
        with pytest.raises(TypeError):
            history[0] = None
