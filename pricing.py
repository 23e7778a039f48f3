"""Turn an untrusted cart into priced, snapshotted order lines.

Prices always come from the catalog; anything the client sends about price is
ignored. Money is ``Decimal`` end to end.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from errors import EmptyCart, InvalidLineItem, OrderRejected, ProductNotFound, ProductUnavailable

# primary keys are 32-bit signed integers
MAX_PRODUCT_ID = 2**31 - 1
MAX_QUANTITY = 999


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class LineItemRequest:
    product_id: int
    quantity: int

    def __post_init__(self):
        if not _is_int(self.product_id):
            raise InvalidLineItem("productId must be an integer")
        if not 1 <= self.product_id <= MAX_PRODUCT_ID:
            raise InvalidLineItem(f"productId must be between 1 and {MAX_PRODUCT_ID}")
        if not _is_int(self.quantity) or not 1 <= self.quantity <= MAX_QUANTITY:
            raise InvalidLineItem(f"quantity must be an integer between 1 and {MAX_QUANTITY}")

    @classmethod
    def from_payload(cls, data, index: int | None = None) -> "LineItemRequest":
        """Parse one ``{"productId": ..., "quantity": ...}`` entry of a request body."""
        if not isinstance(data, dict):
            raise InvalidLineItem("must be an object", index)
        if data.get("productId") is None:
            raise InvalidLineItem("productId is required", index)
        try:
            return cls(product_id=data["productId"], quantity=data.get("quantity"))
        except InvalidLineItem as e:
            raise InvalidLineItem(e.message, index) from None


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    product_name: str
    product_description: str | None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricedCart:
    lines: tuple
    total: Decimal

    @property
    def items_count(self) -> int:
        return len(self.lines)


def price_cart(catalog, lines: Sequence[LineItemRequest]) -> PricedCart:
    """
    Resolve every line against the catalog and price it.

    All unknown and unavailable products are collected before failing, so the
    caller gets the full list in one ``OrderRejected``. Repeated product ids
    stay separate lines.
    """
    if not lines:
        raise EmptyCart()

    products = {p.id: p for p in catalog.find_products_by_ids(l.product_id for l in lines)}

    reasons = []
    seen = set()
    for line in lines:
        if line.product_id in seen:
            continue
        product = products.get(line.product_id)
        if product is None:
            reasons.append(ProductNotFound(line.product_id))
            seen.add(line.product_id)
        elif not product.available:
            reasons.append(ProductUnavailable(product.id, product.name))
            seen.add(line.product_id)

    if reasons:
        raise OrderRejected(reasons)

    priced = []
    for line in lines:
        product = products[line.product_id]
        priced.append(
            PricedLine(
                product_id=product.id,
                quantity=line.quantity,
                unit_price=Decimal(str(product.price)),
                product_name=product.name,
                product_description=product.description,
            )
        )

    total = sum((p.line_total for p in priced), Decimal("0"))
    return PricedCart(lines=tuple(priced), total=total)
