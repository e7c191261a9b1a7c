"""
Custom Application Exceptions
"""
from typing import Optional


class AgriSupplyException(Exception):
    """Base exception for the application"""
    pass


class AuthenticationError(AgriSupplyException):
    """Raised when credentials or a session token are rejected"""
    pass


class ValidationError(AgriSupplyException):
    """
    Raised when form data fails validation before any write is issued.

    `step` carries the wizard step the message belongs to, if any.
    """

    def __init__(self, message: str, step: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.step = step


class BusinessLogicError(AgriSupplyException):
    """Raised when business rules are violated"""
    pass


class NotFoundError(AgriSupplyException):
    """Raised when a referenced row does not exist"""
    pass


class StorageError(AgriSupplyException):
    """Raised when the object store rejects an operation"""
    pass
