"""
Issue Lifecycle Module
======================

Bounded Context for tenancy maintenance and complaint tickets.

Responsibilities:
- Validate and raise issues against a tenancy
- Resolve binding SLA deadlines from priority and agency configuration
- Drive tickets through the multi-party status workflow with a full audit trail
- Keep a role-tagged message thread with internal-only entries
- Detect overdue tickets on every read, write and periodic sweep
- Report per-agency SLA performance
"""

__version__ = "1.0.0"
