"""Typed errors raised by the lending engine."""


class LendingError(Exception):
    """Base class for every error the engine surfaces to its callers."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(LendingError, ValueError):
    """Malformed or out-of-range input. Caller-fixable, never retried."""

    status_code = 400


class NotFoundError(LendingError):
    """Referenced entity does not exist in the expected stage."""

    status_code = 404


class InsufficientFundsError(LendingError):
    """An account balance is below the amount an operation needs."""

    status_code = 400


class FundingCapacityError(InsufficientFundsError):
    """A pledge exceeds what is left to fund on a request."""


class FundingStateError(LendingError):
    """Operation is not valid for the record's current stage or flags."""

    status_code = 409


class PermissionDeniedError(LendingError):
    """Actor does not hold the role the operation requires."""

    status_code = 403


class PersistenceError(LendingError):
    """The store failed an operation that should have succeeded."""

    status_code = 500


class RateProviderError(LendingError):
    """Market interest rates could not be obtained."""

    status_code = 503
