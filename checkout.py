from typing import Sequence

import structlog

from errors import OrderRejected
from models import Order
from orders import CustomerInfo, OrderRepository
from pricing import LineItemRequest, price_cart

logger = structlog.get_logger(__name__)


class CheckoutService:
    """Validates and prices a cart, then persists it as one order."""

    def __init__(self, catalog, repository: OrderRepository):
        self.catalog = catalog
        self.repository = repository

    def place_order(
        self,
        lines: Sequence[LineItemRequest],
        customer: CustomerInfo | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Order, bool]:
        """
        Returns ``(order, created)``.

        A replayed idempotency key returns the stored order before the cart is
        priced again, so later catalog changes cannot reject it.
        """
        if idempotency_key:
            existing = self.repository.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info("Order replayed for idempotency key", order_number=existing.order_number)
                return existing, False

        try:
            cart = price_cart(self.catalog, lines)
        except OrderRejected as e:
            logger.info("Order rejected", product_ids=e.product_ids, reason=e.message)
            raise

        return self.repository.create_order(cart, customer, idempotency_key=idempotency_key)
