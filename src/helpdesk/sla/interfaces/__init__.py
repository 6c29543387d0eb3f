"""
SLA Interfaces Layer
====================

Interface adapters for the SLA module.

Contains:
- Controllers: FastAPI route handlers
- CLI: one-off breach scans outside the web process

This is the outermost layer - it translates requests into calls on the
application services.
"""

from helpdesk.sla.interfaces.controllers import sla_router

__all__ = ["sla_router"]
