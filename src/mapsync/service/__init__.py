"""
HTTP service: reporting API and background scheduler.
"""

from mapsync.service.server import SyncService, create_app, run_service

__all__ = ["SyncService", "create_app", "run_service"]
