"""
API routers for the NGO Service.
"""

from . import auth, blood_requests, facilities, health, profile

__all__ = ["auth", "blood_requests", "facilities", "health", "profile"]
