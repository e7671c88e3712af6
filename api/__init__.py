"""
FastAPI application for the campaign management system.

This package contains the REST API and WebSocket server for candidates,
groups, leaders, locations and planillados, plus spreadsheet import jobs.
"""

__version__ = "1.0.0"
