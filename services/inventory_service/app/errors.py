"""Domain exceptions for the inventory service."""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for inventory domain failures."""


class NotFoundError(InventoryError):
    """Raised when a referenced record does not exist."""

    resource = "record"

    def __init__(self, identifier: str) -> None:
        super().__init__(f"{self.resource} {identifier} not found")
        self.identifier = identifier


class ProductNotFound(NotFoundError):
    resource = "product"


class MovementNotFound(NotFoundError):
    resource = "movement"


class AlertNotFound(NotFoundError):
    resource = "alert"


class StockValidationError(InventoryError):
    """Raised when a stock movement violates a business rule."""


class ProductConflict(InventoryError):
    """Raised when a product code is already taken."""


class AlertDeliveryError(InventoryError):
    """Raised when an alert could not be handed to its channel."""
