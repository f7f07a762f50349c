"""
API dependencies: API key check and caller identity.
"""

from .auth import get_requester, verify_api_key

__all__ = ["get_requester", "verify_api_key"]
