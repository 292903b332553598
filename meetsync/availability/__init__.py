"""Availability resolution

Components:
    rules.py: Weekly rule evaluation, rule and blocked-time storage
    slots.py: Common free-slot search across participants
    finder.py: Permission-gated "find a meeting time" flow
    suggest.py: Quick self-availability hints
"""
