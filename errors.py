"""Errors raised by the ordering core.

Domain code raises these; ``routes_api`` is the only place that turns them
into HTTP responses.
"""

from dataclasses import dataclass


class OrderingError(Exception):
    """Base class for every error the ordering core reports to callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(OrderingError):
    """The submission itself is malformed."""


class EmptyCart(InvalidRequest):
    def __init__(self):
        super().__init__("Order must contain at least one item")


class InvalidLineItem(InvalidRequest):
    def __init__(self, message: str, index: int | None = None):
        if index is not None:
            message = f"items[{index}]: {message}"
        super().__init__(message)
        self.index = index


class InvalidCustomerInfo(InvalidRequest):
    pass


class InvalidOrderStatus(InvalidRequest):
    def __init__(self, status):
        super().__init__(f"Unknown order status: {status!r}")
        self.status = status


@dataclass(frozen=True)
class ProductNotFound:
    product_id: int

    def describe(self) -> str:
        return f"Product {self.product_id} does not exist"

    def as_dict(self) -> dict:
        return {"productId": self.product_id, "reason": "not_found"}


@dataclass(frozen=True)
class ProductUnavailable:
    product_id: int
    name: str

    def describe(self) -> str:
        return f'"{self.name}" is currently unavailable'

    def as_dict(self) -> dict:
        return {"productId": self.product_id, "name": self.name, "reason": "unavailable"}


class OrderRejected(OrderingError):
    """One or more lines reference an unknown or unavailable product."""

    def __init__(self, reasons):
        self.reasons = tuple(reasons)
        super().__init__("; ".join(r.describe() for r in self.reasons))

    @property
    def product_ids(self) -> list[int]:
        return [r.product_id for r in self.reasons]


class OrderNotFound(OrderingError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class PersistenceFailure(OrderingError):
    """The store could not complete a read or the order write."""


class CatalogUnavailable(OrderingError):
    """The catalog lookup failed or timed out."""
