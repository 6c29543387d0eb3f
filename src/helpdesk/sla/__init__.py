"""
SLA Module
==========

Bounded context for service level agreements.

Responsibilities:
- Store per-owner, per-priority SLA policies (at most one active each)
- Scan open tickets and flag first-response and resolution breaches
- Run scans on a schedule, on demand over HTTP, or from the command line
"""
