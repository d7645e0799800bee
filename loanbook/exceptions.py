"""Error taxonomy for the loan book.

Every error derives from ``ValueError`` so form handlers can keep catching
``ValueError`` and turn it into a 400 response.
"""


class LoanbookError(ValueError):
    """Base exception for loanbook."""


class InvalidTransactionError(LoanbookError):
    """A transaction record failed boundary validation."""

    def __init__(self, message: str, transaction_id=None):
        super().__init__(message)
        self.transaction_id = transaction_id


class NotFoundError(LoanbookError):
    """Admin, friend or transaction does not exist or is not owned by the caller."""


class DuplicateError(LoanbookError):
    """A unique value (email, phone number) is already taken."""


class AuthenticationError(LoanbookError):
    """Email and password did not match an admin."""
