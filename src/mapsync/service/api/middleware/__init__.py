"""
API middleware components.
"""

from mapsync.service.api.middleware.error import error_middleware

__all__ = ["error_middleware"]
