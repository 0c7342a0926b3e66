"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context: structured logging
and the HTTP middleware stack.

DO NOT add issue lifecycle rules to the shared kernel.
"""

__version__ = "1.0.0"
