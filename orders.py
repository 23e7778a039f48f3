import secrets
import string
import time
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from errors import InvalidCustomerInfo, InvalidOrderStatus, OrderNotFound, PersistenceFailure
from models import Order, OrderItem, OrderStatus
from paging import Page, clamp_page
from pricing import PricedCart

logger = structlog.get_logger(__name__)

_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_number() -> str:
    """``ORD-<epoch millis>-<5 random base-36 chars>``, e.g. ``ORD-1760659200000-K3Q9Z``."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(5))
    return f"ORD-{millis}-{suffix}"


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class CustomerInfo:
    name: str | None = None
    phone: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.name is not None and len(self.name) > 100:
            raise InvalidCustomerInfo("customerName must be at most 100 characters")
        if self.phone is not None and len(self.phone) > 20:
            raise InvalidCustomerInfo("customerPhone must be at most 20 characters")

    @classmethod
    def from_payload(cls, data: dict) -> "CustomerInfo":
        return cls(
            name=_clean(data.get("customerName")),
            phone=_clean(data.get("customerPhone")),
            notes=_clean(data.get("notes")),
        )


class OrderRepository:
    """
    Writes an order header and its lines as one transaction.

    Order-number collisions are retried with a fresh number up to
    ``max_attempts`` times; every other store error becomes
    ``PersistenceFailure`` straight away.
    """

    def __init__(self, session_factory: sessionmaker, max_attempts: int = 3, number_factory=generate_order_number):
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self._number_factory = number_factory

    def create_order(
        self,
        cart: PricedCart,
        customer: CustomerInfo | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Order, bool]:
        """Returns ``(order, created)``; ``created`` is False when the key was already used."""
        customer = customer or CustomerInfo()

        if idempotency_key:
            existing = self.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "Order already placed for idempotency key",
                    order_number=existing.order_number,
                )
                return existing, False

        for attempt in range(1, self.max_attempts + 1):
            order_number = self._number_factory()
            try:
                order = self._insert(cart, customer, order_number, idempotency_key)
            except IntegrityError as e:
                if idempotency_key:
                    existing = self.find_by_idempotency_key(idempotency_key)
                    if existing is not None:
                        return existing, False
                if not self._order_number_taken(order_number):
                    logger.error("Order insert violated a constraint", order_number=order_number, error=str(e.orig))
                    raise PersistenceFailure("Could not save the order") from e
                logger.warning(
                    "Order number collision, retrying",
                    order_number=order_number,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                )
                continue
            except SQLAlchemyError as e:
                logger.error("Order insert failed", order_number=order_number, error=str(e))
                raise PersistenceFailure("Could not save the order") from e

            logger.info(
                "Order created",
                order_id=order.id,
                order_number=order.order_number,
                total_price=str(order.total_price),
                items_count=order.items_count,
            )
            return order, True

        raise PersistenceFailure(
            f"Could not allocate a unique order number after {self.max_attempts} attempts"
        )

    def _insert(self, cart: PricedCart, customer: CustomerInfo, order_number: str, idempotency_key) -> Order:
        with self._session_factory() as s:
            try:
                order = Order(
                    order_number=order_number,
                    total_price=cart.total,
                    status=OrderStatus.PLACED.value,
                    customer_name=customer.name,
                    customer_phone=customer.phone,
                    notes=customer.notes,
                    items_count=cart.items_count,
                    idempotency_key=idempotency_key,
                )
                s.add(order)
                s.flush()

                order.items = [
                    OrderItem(
                        order_id=order.id,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        price=line.unit_price,
                        product_name=line.product_name,
                        product_description=line.product_description,
                    )
                    for line in cart.lines
                ]
                s.flush()
                s.commit()
            except SQLAlchemyError:
                s.rollback()
                raise
        return order

    def find_by_idempotency_key(self, key: str) -> Order | None:
        try:
            with self._session_factory() as s:
                return (
                    s.query(Order)
                    .options(selectinload(Order.items))
                    .filter(Order.idempotency_key == key)
                    .one_or_none()
                )
        except SQLAlchemyError as e:
            raise PersistenceFailure("Could not read orders") from e

    def _order_number_taken(self, order_number: str) -> bool:
        try:
            with self._session_factory() as s:
                return s.query(Order.id).filter(Order.order_number == order_number).first() is not None
        except SQLAlchemyError as e:
            raise PersistenceFailure("Could not read orders") from e


def _coerce_status(status) -> str | None:
    if status is None or status == "":
        return None
    try:
        return OrderStatus(status).value
    except ValueError:
        raise InvalidOrderStatus(status) from None


class OrderQueryService:
    """Point-in-time reads of placed orders; newest first."""

    def __init__(self, session_factory: sessionmaker, default_limit: int = 20, max_limit: int = 100):
        self._session_factory = session_factory
        self.default_limit = default_limit
        self.max_limit = max_limit

    def list_orders(self, status=None, limit: int | None = None, offset: int = 0) -> Page:
        status = _coerce_status(status)
        limit, offset = clamp_page(limit, offset, self.default_limit, self.max_limit)

        try:
            with self._session_factory() as s:
                q = s.query(Order)
                if status is not None:
                    q = q.filter(Order.status == status)

                total = q.count()
                orders = (
                    q.order_by(Order.created_at.desc(), Order.id.desc())
                    .limit(limit)
                    .offset(offset)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error("Order listing failed", status=status, error=str(e))
            raise PersistenceFailure("Could not read orders") from e

        return Page(items=orders, total=total, limit=limit, offset=offset)

    def get_order(self, order_id: int) -> Order:
        try:
            with self._session_factory() as s:
                order = (
                    s.query(Order)
                    .options(selectinload(Order.items))
                    .filter(Order.id == order_id)
                    .one_or_none()
                )
        except SQLAlchemyError as e:
            logger.error("Order lookup failed", order_id=order_id, error=str(e))
            raise PersistenceFailure("Could not read orders") from e

        if order is None:
            raise OrderNotFound(order_id)
        return order
