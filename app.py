import structlog
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from catalog import CatalogReader
from checkout import CheckoutService
from config import Config
from firestore_db import OrderEventLog
from logging_config import configure_logging
from models import Base
from orders import OrderQueryService, OrderRepository
from routes_api import api
from sql_db import make_engine, make_session_factory

logger = structlog.get_logger(__name__)


def create_app(config=Config, engine=None):
    configure_logging(getattr(config, "LOG_LEVEL", ""))

    app = Flask(__name__)
    app.config.from_object(config)

    if engine is None:
        engine = make_engine(app.config["SQLALCHEMY_DATABASE_URI"], app.config["DB_TIMEOUT_SECONDS"])
    session_factory = make_session_factory(engine)

    # create tables for demo
    Base.metadata.create_all(bind=engine)

    catalog = CatalogReader(session_factory, max_limit=app.config["ORDERS_PAGE_MAX"])
    repository = OrderRepository(session_factory, max_attempts=app.config["ORDER_NUMBER_ATTEMPTS"])

    app.extensions["ordering"] = {
        "engine": engine,
        "catalog": catalog,
        "checkout": CheckoutService(catalog, repository),
        "orders": OrderQueryService(
            session_factory,
            default_limit=app.config["ORDERS_PAGE_DEFAULT"],
            max_limit=app.config["ORDERS_PAGE_MAX"],
        ),
        "events": OrderEventLog(database=app.config["FIRESTORE_DB_ID"])
        if app.config["ORDER_EVENTS_ENABLED"] else None,
    }

    app.register_blueprint(api)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"success": False, "data": None, "message": e.description, "error": e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        logger.exception("Unhandled error")
        return jsonify({"success": False, "data": None, "message": "Internal server error", "error": None}), 500

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
