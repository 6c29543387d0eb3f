"""
Infrastructure
==============

Technical building blocks shared by the bounded contexts (database).
"""
