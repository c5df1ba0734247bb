"""
REST API module for mapsync.

Provides HTTP endpoints for sync logs, schedules and manual runs.
"""

from mapsync.service.api.routes import setup_routes

__all__ = ["setup_routes"]
