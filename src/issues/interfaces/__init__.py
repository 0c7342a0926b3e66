"""
Issue Interfaces Layer
======================

Interface adapters (controllers) for the issue lifecycle module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from src.issues.interfaces.controllers import issues_router

__all__ = ["issues_router"]
