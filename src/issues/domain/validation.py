"""
Issue Input Validation
======================

Fail-fast validation for raw issue creation input.

Checks run in a fixed order and the first failure wins, so callers always
get one precise error naming the offending field. Nothing is coerced or
defaulted here; the only silent fallback in the engine is SLA resolution.
"""

from collections.abc import Mapping
from typing import Any, Tuple

from src.config import IssueCategory, IssuePriority
from src.core import ValidationException

MIN_SUBJECT_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 20

# (field, message) for the party identifiers, checked in this order
REQUIRED_PARTY_FIELDS = (
    ("property_id", "Property ID is required"),
    ("renter_id", "Renter ID is required"),
    ("landlord_id", "Landlord ID is required"),
)


def read_field(data: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute-style object."""
    if isinstance(data, Mapping):
        return data.get(name)
    return getattr(data, name, None)


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


class IssueValidator:
    """Validates creation input for a new issue."""

    @classmethod
    def validate(cls, data: Any) -> Tuple[IssueCategory, IssuePriority]:
        """
        Validate raw creation input.

        Args:
            data: Mapping or object exposing the creation fields

        Returns:
            The parsed (category, priority) pair

        Raises:
            ValidationException: On the first failing field
        """
        for field_name, message in REQUIRED_PARTY_FIELDS:
            if _is_blank(read_field(data, field_name)):
                raise ValidationException(message, field=field_name)

        category = cls._parse_enum(
            read_field(data, "category"), IssueCategory, "category", "Issue category"
        )
        priority = cls._parse_enum(
            read_field(data, "priority"), IssuePriority, "priority", "Issue priority"
        )

        subject = read_field(data, "subject") or ""
        if len(str(subject).strip()) < MIN_SUBJECT_LENGTH:
            raise ValidationException(
                f"Subject must be at least {MIN_SUBJECT_LENGTH} characters long",
                field="subject"
            )

        description = read_field(data, "description") or ""
        if len(str(description).strip()) < MIN_DESCRIPTION_LENGTH:
            raise ValidationException(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters long",
                field="description"
            )

        return category, priority

    @staticmethod
    def _parse_enum(value: Any, enum_cls, field_name: str, label: str):
        if _is_blank(value):
            raise ValidationException(f"{label} is required", field=field_name)
        try:
            return enum_cls(getattr(value, "value", value))
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValidationException(
                f"{label} '{value}' is not one of: {allowed}",
                field=field_name
            )
