"""
Error taxonomy for the assessment core.

Services raise these; the application converts them into ``{"error": ...}``
responses with the status code carried by each class.
"""


class PortalError(Exception):
    """Base exception for all exam portal errors"""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFound(PortalError):
    """Requested record was not found"""

    status_code = 404


class WindowClosed(PortalError):
    """Assessment is not currently open"""

    status_code = 409


class AlreadyCompleted(PortalError):
    """Attempt was already submitted"""

    status_code = 409


class InvalidStudent(PortalError):
    """Student identity could not be resolved"""

    status_code = 422


class ValidationError(PortalError):
    """Request payload failed validation"""

    status_code = 422


class StorageError(PortalError):
    """Backing store failure"""

    status_code = 503
