# exceptions.py — Domain errors mapped to HTTP status codes in main.py
from typing import Any, Dict, List, Optional


class AppException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str = "An application error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(AppException):
    """Raised when input is missing or malformed."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[List[Dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message)


class AuthenticationError(AppException):
    """Raised when the bearer credential is missing, invalid or expired."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class AccessDenied(AppException):
    """Raised when the caller's board role is insufficient or the board is not visible."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFound(AppException):
    """Raised when an identifier does not resolve."""

    status_code = 404

    def __init__(self, resource: str = "Resource", identifier: str = ""):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message)
