"""
Shared Kernel Module
====================

This module contains shared infrastructure used across bounded contexts.

Architecture Pattern: Modular Monolith
- Each module (sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add SLA business logic to the shared kernel.
"""
