from datetime import datetime, timezone

import structlog
from flask import Blueprint, current_app, jsonify, request
from google.auth.exceptions import GoogleAuthError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from errors import (
    CatalogUnavailable, EmptyCart, InvalidRequest, OrderNotFound, OrderRejected, PersistenceFailure,
)
from orders import CustomerInfo
from pricing import LineItemRequest

api = Blueprint("api", __name__, url_prefix="/api")

logger = structlog.get_logger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 64


def _services() -> dict:
    return current_app.extensions["ordering"]


# -----------------------
# Response envelope
# -----------------------
def _ok(data, message=None, pagination=None):
    return {"success": True, "data": data, "message": message, "pagination": pagination}


def _error(message, error=None):
    return {"success": False, "data": None, "message": message, "error": error}


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _money(value) -> str:
    return str(value)


def _category_json(c):
    return {
        "id": c.id,
        "name": c.name,
        "icon": c.icon,
        "displayOrder": c.display_order,
        "isActive": c.is_active,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
    }


def _product_json(p):
    return {
        "id": p.id,
        "categoryId": p.category_id,
        "categoryName": p.category.name,
        "categoryIcon": p.category.icon,
        "name": p.name,
        "description": p.description,
        "price": _money(p.price),
        "imageUrl": p.image_url,
        "available": p.available,
        "featured": p.featured,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def _order_json(o, include_items=False):
    out = {
        "id": o.id,
        "orderNumber": o.order_number,
        "totalPrice": _money(o.total_price),
        "status": o.status,
        "customerName": o.customer_name,
        "customerPhone": o.customer_phone,
        "notes": o.notes,
        "itemsCount": o.items_count,
        "createdAt": _iso(o.created_at),
        "updatedAt": _iso(o.updated_at),
    }
    if include_items:
        out["items"] = [
            {
                "id": i.id,
                "productId": i.product_id,
                "productName": i.product_name,
                "productDescription": i.product_description,
                "price": _money(i.price),
                "quantity": i.quantity,
                "total": _money(i.line_total),
            }
            for i in o.items
        ]
    return out


def _pagination(page):
    return {"limit": page.limit, "offset": page.offset, "total": page.total}


# -----------------------
# Errors
# -----------------------
@api.errorhandler(InvalidRequest)
def handle_invalid_request(e: InvalidRequest):
    return jsonify(_error(e.message)), 400


@api.errorhandler(OrderRejected)
def handle_order_rejected(e: OrderRejected):
    return jsonify(_error("Some items are unavailable", [r.as_dict() for r in e.reasons])), 409


@api.errorhandler(OrderNotFound)
def handle_order_not_found(e: OrderNotFound):
    return jsonify(_error(e.message)), 404


@api.errorhandler(PersistenceFailure)
@api.errorhandler(CatalogUnavailable)
def handle_store_unavailable(e):
    return jsonify(_error("Service temporarily unavailable, please try again")), 503


# -----------------------
# Catalog
# -----------------------
@api.get("/categories")
def get_categories():
    categories = _services()["catalog"].list_categories()
    return jsonify(_ok([_category_json(c) for c in categories]))


@api.get("/products")
def get_products():
    featured = request.args.get("featured", "").strip().lower()

    page = _services()["catalog"].list_products(
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("search", "").strip() or None,
        featured=True if featured == "true" else None,
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify(_ok([_product_json(p) for p in page.items], pagination=_pagination(page)))


@api.get("/products/featured")
def get_featured_products():
    products = _services()["catalog"].featured_products()
    return jsonify(_ok([_product_json(p) for p in products]))


@api.get("/products/category/<int:category_id>")
def get_products_by_category(category_id: int):
    catalog = _services()["catalog"]
    category = catalog.find_category_by_id(category_id)
    if category is None or not category.is_active:
        return jsonify(_error(f"Category {category_id} not found")), 404

    page = catalog.list_products(category_id=category_id, limit=catalog.max_limit)
    return jsonify(_ok([_product_json(p) for p in page.items]))


# -----------------------
# Orders
# -----------------------
@api.post("/orders")
def create_order():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")

    items = data.get("items")
    if not items:
        raise EmptyCart()
    if not isinstance(items, list):
        raise InvalidRequest("items must be a list")

    lines = [LineItemRequest.from_payload(item, index) for index, item in enumerate(items)]
    customer = CustomerInfo.from_payload(data)

    idempotency_key = (request.headers.get("Idempotency-Key") or "").strip() or None
    if idempotency_key and len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise InvalidRequest(f"Idempotency-Key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")

    services = _services()
    order, created = services["checkout"].place_order(lines, customer, idempotency_key=idempotency_key)
    if not created:
        return jsonify(_ok(_order_json(order, include_items=True), "Order already placed")), 200

    event_log = services.get("events")
    if event_log is not None:
        try:
            doc_id = event_log.order_placed(order)
            logger.info("Order event logged", order_number=order.order_number, doc_id=doc_id)
        except (RuntimeError, GoogleAuthError) as e:
            # the order is committed; the audit trail is best effort
            logger.warning("Order event log failed", order_number=order.order_number, error=str(e))

    return jsonify(_ok(_order_json(order, include_items=True), "Order created")), 201


@api.get("/orders")
def get_orders():
    page = _services()["orders"].list_orders(
        status=request.args.get("status", "").strip() or None,
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify(_ok(
        [_order_json(o) for o in page.items],
        pagination=_pagination(page),
    ))


@api.get("/orders/<int:order_id>")
def get_order(order_id: int):
    order = _services()["orders"].get_order(order_id)
    return jsonify(_ok(_order_json(order, include_items=True)))


# -----------------------
# Health
# -----------------------
@api.get("/health")
def health():
    now = datetime.now(timezone.utc).isoformat()
    try:
        with _services()["engine"].connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed", error=str(e))
        return jsonify({"status": "ERROR", "timestamp": now, "database": "disconnected"}), 503

    return jsonify({"status": "OK", "timestamp": now, "database": "connected"})
