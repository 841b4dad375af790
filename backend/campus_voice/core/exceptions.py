from fastapi import HTTPException, status


class AuthenticationException(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PortalError(Exception):
    """Base class for every failure the portal surfaces to a caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(PortalError):
    """Local, pre-flight rejection. Raised before any backend call is made."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"


# Auth

class AuthError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed"


class InvalidCredentials(AuthError):
    default_message = "Incorrect email or password"


class RoleMismatch(AuthError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, role: str = None):
        super().__init__(f"Invalid credentials for {role} login" if role else "Invalid credentials for this login")


class ProfileNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Profile not found"


class DuplicateAccount(AuthError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Email already registered"


class WeakCredential(AuthError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Password does not meet the minimum policy"


class SignOutFailed(AuthError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to sign out"


class RoleRequired(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed for this role"


# Store

class StoreError(PortalError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Backend store error"


class StoreUnavailable(StoreError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Ticket store is unavailable"


class UpdateError(StoreError):
    default_message = "Failed to update ticket"


class SubmissionError(StoreError):
    default_message = "Failed to submit complaint"


class RecordNotFound(StoreError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Record not found"


class TicketNotFound(RecordNotFound):
    default_message = "Ticket not found"


class DuplicateRecord(StoreError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Record already exists"
