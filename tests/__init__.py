"""meetsync Test Suite

This package contains all tests for meetsync.

Test organization:
- unit/: Unit tests for individual modules
  - availability/: Rule evaluation, slot search, suggestions
  - calendar/: Busy intervals, OAuth tokens, Google Calendar source
  - permissions/: Domains, grants, permission requests
- integration/: Find-times flow and API endpoint tests

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/permissions/
"""
