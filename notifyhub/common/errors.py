"""Error taxonomy shared by the dispatch, realtime and audit services."""


class NotificationError(Exception):
    """Base class for domain errors raised by notification services."""


class DeliveryValidationError(NotificationError, ValueError):
    """A create request is missing or has malformed required fields."""


class NotificationNotFound(NotificationError, LookupError):
    """No active notification matches the requested id."""


class InvalidStatus(NotificationError, ValueError):
    """The requested status is not a known transition target."""


class TransportFailure(NotificationError, RuntimeError):
    """The queue, store or live connection could not be reached."""


class ConnectionGone(NotificationError):
    """The live connection is closed or unknown to this process."""


class ConnectionNotLocal(ConnectionGone):
    """The connection id is registered but its socket lives in another process."""
