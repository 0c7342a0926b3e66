"""
Issue Infrastructure Models
===========================

SQLAlchemy ORM models for the issue module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
The append-only sequences (status history, messages, internal notes)
are stored as JSON arrays on the issue row so a single conditional
UPDATE writes the whole ticket atomically.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.config import IssueStatus
from src.infrastructure.database import Base


class IssueModel(Base):
    """
    Database model for the Issue entity.

    Maps to the 'issues' table.
    """
    __tablename__ = "issues"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Parties
    property_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    renter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    landlord_id: Mapped[str] = mapped_column(String(255), nullable=False)
    agency_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    assigned_agent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    match_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    responsible_party_type: Mapped[str] = mapped_column(String(20), nullable=False)  # landlord or agency
    responsible_party_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Agency SLA configuration as resolved at creation
    responsible_party_sla: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Classification and content
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_health_and_safety_hazard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hazard_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timeline
    raised_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sla_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sla_hours: Mapped[float] = mapped_column(Float, nullable=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    # State
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=IssueStatus.OPEN.value, index=True)
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    messages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    internal_notes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Resolution
    resolution_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    renter_satisfaction_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class AgencySLAConfigurationModel(Base):
    """
    Database model for an agency's SLA configuration.

    Maps to the 'agency_sla_configurations' table.
    """
    __tablename__ = "agency_sla_configurations"

    agency_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    emergency_response_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    urgent_response_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    routine_response_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    maintenance_response_days: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
