"""
Error taxonomy shared by the socket channel and the HTTP routes.

Domain mutations raise these; the socket layer turns them into ``<cmd>-err``
replies and the HTTP layer into standardized error responses.
"""

from fastapi import status


class UnhangoutError(Exception):
    """Base class for every recoverable error in the realtime core"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class AuthenticationError(UnhangoutError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "authentication"


class NotFoundError(UnhangoutError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class PermissionDeniedError(UnhangoutError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "permission"


class ValidationError(UnhangoutError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation"


class StateConflictError(UnhangoutError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "state_conflict"


class AlreadyLiveError(StateConflictError):
    pass


class NotLiveError(StateConflictError):
    pass


class AlreadyStartedError(StateConflictError):
    pass


class NotStartedError(StateConflictError):
    pass


class AlreadyStoppedError(StateConflictError):
    pass


class AlreadyPendingError(StateConflictError):
    pass


class CapacityExceededError(StateConflictError):
    pass


class AlreadyAssignedError(StateConflictError):
    pass


class StorageError(UnhangoutError):
    """Persistence backend failure; not recoverable per message"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "storage"
