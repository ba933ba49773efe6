"""
Custom exceptions for the application.
"""

from .exceptions import APIException, AuthenticationError, ExternalAPIError, MutationFailedError

__all__ = ["APIException", "AuthenticationError", "ExternalAPIError", "MutationFailedError"]
