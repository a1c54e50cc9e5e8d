class ChamberError(Exception):
    """Base class for failures reported by the chamber core."""


class ValidationError(ChamberError):
    """Malformed input reached the core. Nothing was persisted or broadcast."""


class NotFoundError(ChamberError):
    """A single-record lookup found nothing (as opposed to a zero value)."""


class ConcurrencyConflict(ChamberError):
    """The device was busy with another command for longer than allowed."""


class StorageError(ChamberError):
    """The persistence layer failed; the request can be retried."""


class DeliveryFailure(ChamberError):
    """A message could not be sent to one subscriber."""
