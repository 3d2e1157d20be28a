"""
Error types raised by the identity use cases.

The HTTP layer maps each kind to a status code; nothing in here knows
about transports.
"""


class IdentityError(Exception):
    """Base class for all identity errors."""
    kind = "internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ConflictError(IdentityError):
    """Email already registered."""
    kind = "conflict"


class UnauthenticatedError(IdentityError):
    """Bad credentials. Unknown email and wrong password look the same."""
    kind = "unauthenticated"


class ForbiddenError(IdentityError):
    """Correct credentials for an inactive account."""
    kind = "forbidden"


class NotFoundError(IdentityError):
    """Referenced user or role does not exist."""
    kind = "not_found"


class InternalError(IdentityError):
    """Store, hashing or signing failure not otherwise classified."""
    kind = "internal"


# Store-level signals, translated by the service layer

class DuplicateEmailError(Exception):
    """Unique constraint on users.email violated."""


class DuplicateRoleAssignmentError(Exception):
    """Unique constraint on (user_id, role_id) violated."""


class MissingReferenceError(Exception):
    """Foreign key violated: the user or role of an assignment does not exist."""
