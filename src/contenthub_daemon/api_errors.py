"""Simple, consistent API error handling."""

from fastapi import HTTPException


class APIError(HTTPException):
    """Simple API error with consistent format.

    All errors will be formatted as:
    {"success": false, "message": "error message", "data": null}
    """

    def __init__(self, status_code: int, message: str, data: dict | None = None):
        """Create an API error.

        Args:
            status_code: HTTP status code
            message: Error message to display
            data: Optional payload returned alongside the error
        """
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.data = data


# Convenience error classes for common cases
class NotFoundError(APIError):
    """404 - Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(404, f"{resource} not found: {resource_id}")


class ConflictError(APIError):
    """409 - Resource is not in a state that allows the operation."""

    def __init__(self, message: str, data: dict | None = None):
        super().__init__(409, message, data)


class AuthenticationError(APIError):
    """403 - Authentication failed."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(403, message)


class ServerError(APIError):
    """500 - Internal server error."""

    def __init__(self, message: str, data: dict | None = None):
        super().__init__(500, message, data)


class UpstreamError(APIError):
    """502 - The AI provider failed or returned an unusable article."""

    def __init__(self, message: str, data: dict | None = None):
        super().__init__(502, message, data)


class ServiceUnavailableError(APIError):
    """503 - The AI provider circuit is open."""

    def __init__(self, message: str, data: dict | None = None):
        super().__init__(503, message, data)
