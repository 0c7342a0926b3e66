"""
Issue Infrastructure Layer
==========================

Infrastructure implementations for the issue lifecycle:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer (SQL and in-memory)
- External: YAML config watcher and overdue sweep scheduler
"""

from src.issues.infrastructure.models import IssueModel, AgencySLAConfigurationModel
from src.issues.infrastructure.repositories import (
    SQLAlchemyIssueRepository,
    InMemoryIssueRepository,
    SQLAlchemyAgencyConfigProvider,
    InMemoryAgencyConfigProvider,
)
from src.issues.infrastructure.external import AgencyConfigManager, OverdueSweepScheduler

__all__ = [
    "IssueModel",
    "AgencySLAConfigurationModel",
    "SQLAlchemyIssueRepository",
    "InMemoryIssueRepository",
    "SQLAlchemyAgencyConfigProvider",
    "InMemoryAgencyConfigProvider",
    "AgencyConfigManager",
    "OverdueSweepScheduler",
]
