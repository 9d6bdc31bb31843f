"""Error classes raised by the services and mapped to HTTP statuses in main."""


class FinanceError(Exception):
    """Base class for errors the API reports to clients."""

    status_code = 500


class ValidationError(FinanceError, ValueError):
    """Malformed or out-of-range input, detected before any write."""

    status_code = 400


class NotFoundError(FinanceError, ValueError):
    """Missing record, or one owned by another user."""

    status_code = 404


class ForbiddenError(FinanceError):
    """Operation on a protected record."""

    status_code = 403


class InternalError(FinanceError):
    """Persistence failure; the cause is logged, not shown."""

    status_code = 500
