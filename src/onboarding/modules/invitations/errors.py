"""
Invitation Errors

Exception taxonomy for the invitation subsystem. Every error carries a
machine-readable `error_code` and the HTTP status the routers respond with.
"""


class InvitationServiceError(Exception):
    """Base exception for invitation service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class PermissionDeniedError(InvitationServiceError):
    """Raised when the actor's role or tenant does not allow the operation."""

    def __init__(self, message: str = "You are not allowed to perform this action."):
        super().__init__(
            message=message,
            error_code="PERMISSION_DENIED",
            status_code=403,
        )


class InviteValidationError(InvitationServiceError):
    """Raised when invite parameters are invalid (missing class, bad limit...)."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=422,
        )


class NotAuthenticatedError(InvitationServiceError):
    """Raised when the actor cannot be resolved to a known, active user."""

    def __init__(self, message: str = "Authentication is required."):
        super().__init__(
            message=message,
            error_code="NOT_AUTHENTICATED",
            status_code=401,
        )


class InvalidTokenError(InvitationServiceError):
    """Raised when an invite code does not exist (or is not visible to the caller)."""

    def __init__(self, message: str = "Invalid invite code."):
        super().__init__(
            message=message,
            error_code="INVALID_TOKEN",
            status_code=404,
        )


class TokenExpiredError(InvitationServiceError):
    """Raised when an invite code is past its expiry time."""

    def __init__(self):
        super().__init__(
            message="This invite code has expired.",
            error_code="TOKEN_EXPIRED",
            status_code=410,
        )


class TokenExhaustedError(InvitationServiceError):
    """Raised when an invite code has no redemptions left (used up or revoked)."""

    def __init__(self):
        super().__init__(
            message="This invite code has already been used.",
            error_code="TOKEN_EXHAUSTED",
            status_code=409,
        )


class GenerationExhaustedError(InvitationServiceError):
    """Raised when no unique code could be produced within the attempt budget."""

    def __init__(self, attempts: int):
        super().__init__(
            message=f"Could not generate a unique invite code after {attempts} attempts.",
            error_code="GENERATION_EXHAUSTED",
            status_code=503,
        )


class StorageError(InvitationServiceError):
    """
    Raised when the token store fails for a reason other than a code collision.

    The message is safe to show; driver details stay in the logs and the
    exception chain.
    """

    def __init__(self, message: str = "Invite storage is unavailable."):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            status_code=500,
        )


# Failures a public caller may see when presenting a code
REDEMPTION_ERRORS = (InvalidTokenError, TokenExpiredError, TokenExhaustedError)
