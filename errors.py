"""Exceptions raised by the storefront services.

Routes translate these into HTTP responses; the messages carried here are the
ones shown to the user, so they never include backend error detail.
"""


class StoreError(Exception):
    """Base class for all storefront errors."""

    def __init__(self, message: str = "Something went wrong. Please try again."):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    pass


class CartFullError(StoreError):
    pass


class CheckoutValidationError(StoreError):
    pass


class ProductValidationError(StoreError):
    pass


class ExternalServiceError(StoreError):
    """A backend, storage or payment call failed."""


class StorageError(ExternalServiceError):
    pass


class WebhookVerificationError(StoreError):
    pass


class ConfigurationError(StoreError):
    pass
