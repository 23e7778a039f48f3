from typing import Iterable

import structlog
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import contains_eager, sessionmaker

from errors import CatalogUnavailable
from models import Category, Product
from paging import Page, clamp_page

logger = structlog.get_logger(__name__)


class CatalogReader:
    """Read-only access to categories and products."""

    def __init__(self, session_factory: sessionmaker, default_limit: int = 50, max_limit: int = 100):
        self._session_factory = session_factory
        self.default_limit = default_limit
        self.max_limit = max_limit

    def find_products_by_ids(self, ids: Iterable[int]) -> list[Product]:
        ids = sorted(set(ids))
        if not ids:
            return []
        try:
            with self._session_factory() as s:
                return s.query(Product).filter(Product.id.in_(ids)).all()
        except SQLAlchemyError as e:
            logger.error("Product lookup failed", product_ids=ids, error=str(e))
            raise CatalogUnavailable("Catalog is temporarily unavailable") from e

    def find_category_by_id(self, category_id: int) -> Category | None:
        try:
            with self._session_factory() as s:
                return s.get(Category, category_id)
        except SQLAlchemyError as e:
            raise CatalogUnavailable("Catalog is temporarily unavailable") from e

    def list_categories(self, active_only: bool = True) -> list[Category]:
        try:
            with self._session_factory() as s:
                q = s.query(Category)
                if active_only:
                    q = q.filter(Category.is_active.is_(True))
                return q.order_by(Category.display_order, Category.name).all()
        except SQLAlchemyError as e:
            raise CatalogUnavailable("Catalog is temporarily unavailable") from e

    def list_products(
        self,
        category_id: int | None = None,
        search: str | None = None,
        featured: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> Page:
        """
        Available products, in menu order, plus the count of all matches.

        ``search`` is a case-insensitive substring match on name or description.
        """
        limit, offset = clamp_page(limit, offset, self.default_limit, self.max_limit)

        try:
            with self._session_factory() as s:
                q = s.query(Product).join(Category).filter(Product.available.is_(True))
                if category_id is not None:
                    q = q.filter(Product.category_id == category_id)
                if search:
                    pattern = f"%{search.strip()}%"
                    q = q.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
                if featured is not None:
                    q = q.filter(Product.featured.is_(featured))

                total = q.count()
                products = (
                    q.options(contains_eager(Product.category))
                    .order_by(Category.display_order, Product.display_order, Product.name)
                    .limit(limit)
                    .offset(offset)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error("Product listing failed", error=str(e))
            raise CatalogUnavailable("Catalog is temporarily unavailable") from e

        return Page(items=products, total=total, limit=limit, offset=offset)

    def featured_products(self) -> list[Product]:
        return self.list_products(featured=True, limit=self.max_limit).items
