"""
Custom exception classes for the Histories Cache API.
"""


class APIException(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ExternalAPIError(APIException):
    """Exception raised when the starter API fails."""

    def __init__(self, message: str = "External API request failed"):
        super().__init__(message, 502)


class AuthenticationError(APIException):
    """Exception raised when a request needs a token and carries none."""

    def __init__(self, message: str = "Missing bearer token"):
        super().__init__(message, 401)


class MutationFailedError(APIException):
    """Exception raised when a create/update/delete was rejected upstream."""

    def __init__(self, message: str = "History mutation failed"):
        super().__init__(message, 502)
