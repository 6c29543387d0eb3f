"""
Helpdesk SLA Service
====================

SLA policy management and breach detection for the helpdesk.
"""

__version__ = "1.0.0"
