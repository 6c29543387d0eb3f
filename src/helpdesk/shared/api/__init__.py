"""
Shared API
==========

Middleware and exception handlers common to every router.
"""
