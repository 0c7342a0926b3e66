"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="tenancy-issue-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tenancy_issues",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Agency SLA Configuration ==========
    agency_config_backend: Literal["database", "yaml"] = Field(
        default="database",
        description="Where per-agency SLA configurations are read from"
    )
    agency_config_path: Path = Field(
        default=Path("agency_sla.yaml"),
        description="Path to the agency SLA YAML file (yaml backend only)"
    )

    # ========== Lifecycle Rules ==========
    close_grace_period_hours: float = Field(
        default=72.0,
        description="Hours after resolution before the landlord/agency may close without the renter",
        ge=0
    )
    approaching_deadline_fraction: float = Field(
        default=0.25,
        description="Fraction of the SLA window left at which a ticket counts as approaching its deadline",
        gt=0,
        lt=1
    )

    # ========== Overdue Sweep ==========
    overdue_sweep_interval: int = Field(
        default=300,
        description="Seconds between overdue sweeps (0 disables the scheduler)",
        ge=0
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class IssuePriority(str, Enum):
    """Issue priority levels, most severe first."""
    EMERGENCY = "emergency"
    URGENT = "urgent"
    ROUTINE = "routine"
    LOW = "low"


class IssueCategory(str, Enum):
    """Maintenance / complaint categories."""
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    COMPLAINT = "complaint"
    QUERY = "query"
    HAZARD = "hazard"
    DISPUTE = "dispute"


class IssueStatus(str, Enum):
    """Issue lifecycle statuses."""
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class SenderRole(str, Enum):
    """Roles a message author can hold on a ticket thread."""
    RENTER = "renter"
    LANDLORD = "landlord"
    ESTATE_AGENT = "estate_agent"
    MANAGEMENT_AGENCY = "management_agency"


class ActorRole(str, Enum):
    """Capability an actor holds on one particular ticket."""
    RENTER = "renter"
    LANDLORD = "landlord"
    AGENCY = "agency"


class ComplianceBand(str, Enum):
    """Colour band for an SLA compliance rate."""
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


# ========== Lifecycle groupings ==========

# overdue is frozen once a ticket reaches one of these
TERMINAL_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.CLOSED})
NON_TERMINAL_STATUSES = frozenset(set(IssueStatus) - TERMINAL_STATUSES)

# Platform SLA defaults (hours), used when an agency has no usable configuration
DEFAULT_SLA_HOURS: Dict[IssuePriority, float] = {
    IssuePriority.EMERGENCY: 4,
    IssuePriority.URGENT: 24,
    IssuePriority.ROUTINE: 72,
    IssuePriority.LOW: 168,
}
