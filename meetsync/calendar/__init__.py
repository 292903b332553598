"""External calendar access

Components:
    base.py: CalendarSource interface
    google.py: Google Calendar events source and token refresh call
    oauth.py: Stored credentials and serialized on-demand refresh
    busy.py: Buffered busy intervals per user, concurrent fan-out
"""
