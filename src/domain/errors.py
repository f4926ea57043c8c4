"""Exceptions raised by the booking engine and its courier adapters."""


class ShipmentError(Exception):
    """Base class for booking engine errors."""


class ShipmentValidationError(ShipmentError):
    """Raised when a shipment fails local checks; never reaches a courier."""

    def __init__(self, errors: list[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class CourierError(ShipmentError):
    """A courier API rejected or failed a request.

    ``detail`` holds the richest description available: the structured API
    error body when there is one, otherwise the transport-level message.
    """

    def __init__(self, message: str, detail: object = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class CourierAuthError(CourierError):
    """Token acquisition failed."""


class CourierBookingError(CourierError):
    """The courier refused or failed the booking / cancellation call."""


class BookingError(ShipmentError):
    """A booking attempt failed after passing validation."""


class CancellationError(ShipmentError):
    def __init__(self, message: str, detail: object = None) -> None:
        super().__init__(message)
        self.detail = detail


class FulfillmentSyncError(ShipmentError):
    """Shopify fulfillment notification failed. Never rolls back a booking."""


class CourierTrackingError(CourierError):
    """The courier could not report the status of an AWB."""


class TrackingError(ShipmentError):
    """A shipment's courier status could not be refreshed. Status is left unchanged."""

    def __init__(self, message: str, detail: object = None) -> None:
        super().__init__(message)
        self.detail = detail
