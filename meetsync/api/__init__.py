"""meetsync HTTP API

Usage:
    uvicorn meetsync.api.main:app --host 127.0.0.1 --port 8080
"""
