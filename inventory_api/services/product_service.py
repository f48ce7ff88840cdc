from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func, update
from typing import Optional, List
import math
import logging

from inventory_api.models.product import Product, InventoryHistory
from inventory_api.schemas.product import ProductCreate, ProductUpdate, ProductResponse
from inventory_api.services.history_service import InventoryHistoryService
from inventory_api.utils.cache import cache_service

logger = logging.getLogger(__name__)

# Columns a listing may be sorted by; anything else falls back to id
SORTABLE_FIELDS = ("id", "name", "category", "brand", "stock", "status")

PRODUCT_FIELDS = ("name", "unit", "category", "brand", "stock", "status", "image")


class ProductNotFoundError(Exception):
    """Exception raised when the requested product doesn't exist."""
    pass


class DuplicateProductError(Exception):
    """Exception raised when another product already uses the name (any case)."""
    pass


class ConcurrentUpdateError(Exception):
    """Exception raised when the stock kept changing under repeated update attempts."""
    pass


def resolve_sort_column(sort: Optional[str]):
    """Map a requested sort key onto an allow-listed column."""
    key = (sort or "id").lower()
    if key not in SORTABLE_FIELDS:
        key = "id"
    return getattr(Product, key)


def is_ascending(order: Optional[str]) -> bool:
    """Only an explicit 'asc' sorts ascending; everything else is descending."""
    return bool(order) and order.lower() == "asc"


class ProductService:
    """
    Service class for Product operations.

    This service handles:
    - Creating products with case-insensitive name uniqueness
    - Filtered, sorted and paginated listings and name search
    - Full-replace updates that record stock changes in history
    - Deleting products together with their history
    - Product detail caching and invalidation
    """

    CACHE_PREFIX = "product"

    # Attempts of the compare-and-set stock write before giving up
    UPDATE_ATTEMPTS = 5

    def __init__(self, db: Session):
        self.db = db
        self.history = InventoryHistoryService(db)

    def find_by_name(self, name: str, exclude_id: int = None) -> Optional[Product]:
        """
        Find a product whose name matches ignoring letter case.

        Args:
            name: Name to look up
            exclude_id: Product ID to ignore (the product being updated)
        """
        query = self.db.query(Product).filter(func.lower(Product.name) == func.lower(name))
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        return query.first()

    def create(self, product_data: ProductCreate) -> Product:
        """
        Create a new product.

        Raises:
            DuplicateProductError: If the name is already taken (any case)
        """
        if self.find_by_name(product_data.name):
            raise DuplicateProductError("Product with this name already exists")

        product = Product(**product_data.model_dump(include=set(PRODUCT_FIELDS)))
        self.db.add(product)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent insert of the same name
            self.db.rollback()
            raise DuplicateProductError("Product with this name already exists")

        self.db.refresh(product)
        logger.info(f"Product #{product.id} '{product.name}' created")
        return product

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get a product by ID from the database."""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_by_id_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).
        """
        cached = cache_service.get(self.CACHE_PREFIX, str(product_id))
        if cached:
            return cached

        product = self.get_by_id(product_id)
        if not product:
            return None

        product_dict = ProductResponse.model_validate(product).model_dump()
        cache_service.set(self.CACHE_PREFIX, str(product_id), product_dict)
        return product_dict

    def list_products(
        self,
        page: int = 1,
        page_size: int = 10,
        category: str = None,
        name: str = None,
        sort: str = None,
        order: str = None
    ) -> tuple[List[Product], int, int]:
        """
        Get a filtered, sorted page of products.

        The count and the page are taken from the same filtered query so
        the pagination metadata always describes the returned rows.

        Args:
            page: Page number (1-indexed)
            page_size: Number of items per page
            category: Exact category match
            name: Case-insensitive substring of the product name
            sort: Sort field, one of SORTABLE_FIELDS (defaults to id)
            order: 'asc' for ascending, anything else descending

        Returns:
            Tuple of (products list, total count, total pages)
        """
        query = self.db.query(Product)

        if category:
            query = query.filter(Product.category == category)
        if name:
            query = query.filter(Product.name.icontains(name, autoescape=True))

        total = query.count()
        total_pages = math.ceil(total / page_size)

        column = resolve_sort_column(sort)
        ordering = column.asc() if is_ascending(order) else column.desc()

        offset = (page - 1) * page_size
        products = (
            query.order_by(ordering, Product.id.desc())
            .offset(offset)
            .limit(page_size)
            .all()
        )

        return products, total, total_pages

    def search(self, term: str) -> List[Product]:
        """Find all products whose name contains the term, newest first."""
        return (
            self.db.query(Product)
            .filter(Product.name.icontains(term, autoescape=True))
            .order_by(Product.id.desc())
            .all()
        )

    def update(self, product_id: int, product_data: ProductUpdate) -> Product:
        """
        Replace all fields of a product and record any stock change.

        The write is a compare-and-set: the UPDATE only matches while the
        stock still holds the value that was read. If a concurrent update
        got there first the row is read again and the write retried, so the
        history entry always starts from the stock it actually replaced.
        On databases with row locks the read also takes SELECT ... FOR UPDATE.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            DuplicateProductError: If another product already uses the name
            ConcurrentUpdateError: If every attempt lost the race
        """
        values = {field: getattr(product_data, field) for field in PRODUCT_FIELDS}

        for attempt in range(1, self.UPDATE_ATTEMPTS + 1):
            product = (
                self.db.query(Product)
                .filter(Product.id == product_id)
                .with_for_update()
                .first()
            )
            if not product:
                self.db.rollback()
                raise ProductNotFoundError(f"Product with ID {product_id} not found")

            if self.find_by_name(product_data.name, exclude_id=product_id):
                self.db.rollback()
                raise DuplicateProductError("Product with this name already exists")

            old_stock = product.stock
            try:
                result = self.db.execute(
                    update(Product)
                    .where(Product.id == product_id, Product.stock == old_stock)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    self.db.commit()
                    break
            except IntegrityError:
                self.db.rollback()
                raise DuplicateProductError("Product with this name already exists")

            # Stock changed between read and write
            self.db.rollback()
            logger.info(f"Product #{product_id} changed concurrently, retrying update (attempt {attempt})")
        else:
            raise ConcurrentUpdateError(f"Product with ID {product_id} is being modified concurrently")

        self.history.record_stock_change(
            product_id, old_stock, product_data.stock, product_data.changed_by
        )
        self._invalidate_cache(product_id)

        self.db.refresh(product)
        logger.info(f"Product #{product_id} updated")
        return product

    def delete(self, product_id: int) -> bool:
        """
        Delete a product and its inventory history.

        Returns:
            True if deleted, False if not found
        """
        product = self.get_by_id(product_id)

        if not product:
            return False

        self.db.delete(product)
        self.db.commit()

        self._invalidate_cache(product_id)
        logger.info(f"Product #{product_id} deleted")

        return True

    def get_history(self, product_id: int) -> List[InventoryHistory]:
        """Get the stock change history of a product, newest first."""
        return self.history.list_for_product(product_id)

    def _invalidate_cache(self, product_id: int) -> None:
        """Invalidate cache for a product."""
        cache_service.delete(self.CACHE_PREFIX, str(product_id))
