"""
Domain exceptions raised by the service layer.

Routes do not need to catch these: handlers registered in ``app.main``
translate them into HTTP responses.
"""


class TripLedgerError(Exception):
    """Base class for service-level errors."""


class NotFoundError(TripLedgerError):
    """Requested entity does not exist or has been soft-deleted."""


class InvalidOperationError(TripLedgerError):
    """Operation conflicts with the entity's current state."""


class FxRateUnavailableError(TripLedgerError):
    """No exchange rate could be resolved for a currency."""


class DataIntegrityWarning(TripLedgerError):
    """
    A spend or assignment cannot be used for balance calculation.

    Never surfaces to callers: the balance engine logs it and skips
    the offending record.
    """
