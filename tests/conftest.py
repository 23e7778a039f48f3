from decimal import Decimal

import pytest
from google.api_core.exceptions import ServiceUnavailable

from app import create_app
from catalog import CatalogReader
from checkout import CheckoutService
from config import Config
from models import Base, Category, Product
from orders import OrderQueryService, OrderRepository
from sql_db import make_engine, make_session_factory


class ConfigForTests(Config):
    TESTING = True
    ORDER_EVENTS_ENABLED = False
    LOG_LEVEL = "WARNING"


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}", timeout_seconds=5)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def seeded(session_factory):
    """
    Coffee: Espresso (150, featured), Americano (200, unavailable), Cappuccino (220, featured)
    Desserts: Cheesecake (320.50), Macaron (0.10)
    Seasonal (inactive category): no products
    """
    with session_factory() as s:
        s.add_all([
            Category(id=1, name="Coffee", icon="cup", display_order=1),
            Category(id=2, name="Desserts", icon="cake", display_order=2),
            Category(id=3, name="Seasonal", icon="leaf", display_order=3, is_active=False),
        ])
        s.flush()
        s.add_all([
            Product(id=1, category_id=1, name="Espresso", description="Classic Italian coffee",
                    price=Decimal("150.00"), featured=True),
            Product(id=2, category_id=1, name="Americano", description="Espresso with hot water",
                    price=Decimal("200.00"), available=False),
            Product(id=3, category_id=1, name="Cappuccino", description="Espresso with steamed milk foam",
                    price=Decimal("220.00"), featured=True, display_order=1),
            Product(id=4, category_id=2, name="Cheesecake", description="Baked cheesecake with berry sauce",
                    price=Decimal("320.50")),
            Product(id=5, category_id=2, name="Macaron", description=None, price=Decimal("0.10")),
        ])
        s.commit()


@pytest.fixture()
def catalog(session_factory, seeded):
    return CatalogReader(session_factory)


@pytest.fixture()
def repository(session_factory):
    return OrderRepository(session_factory)


@pytest.fixture()
def queries(session_factory):
    return OrderQueryService(session_factory)


@pytest.fixture()
def checkout(catalog, repository):
    return CheckoutService(catalog, repository)


@pytest.fixture()
def app(engine, seeded):
    return create_app(ConfigForTests, engine=engine)


@pytest.fixture()
def client(app):
    return app.test_client()


class FakeFirestore:
    """Stands in for ``firestore.Client``; the first ``failures`` writes raise."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.writes = 0
        self.collections = []
        self.docs = {}

    def collection(self, name):
        self.collections.append(name)
        return self

    def document(self):
        return _FakeDocRef(self)


class _FakeDocRef:
    def __init__(self, client: FakeFirestore):
        self.client = client
        self.id = f"doc-{len(client.docs) + 1}"

    def set(self, doc):
        self.client.writes += 1
        if self.client.failures:
            self.client.failures -= 1
            raise ServiceUnavailable("firestore unavailable")
        self.client.docs[self.id] = doc


@pytest.fixture()
def fake_firestore():
    return FakeFirestore
