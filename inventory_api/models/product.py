from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from inventory_api.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    """
    Product model representing a stockable item.

    Attributes:
        id: Unique identifier for the product
        name: Product name, unique regardless of letter case
        unit, category, brand, status, image: Optional descriptive fields
        stock: Quantity on hand (must be non-negative)
        history: Stock change entries, deleted together with the product
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    unit = Column(String(64), nullable=True)
    category = Column(String(255), nullable=True)
    brand = Column(String(255), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    status = Column(String(64), nullable=True)
    image = Column(String(1024), nullable=True)

    history = relationship(
        "InventoryHistory",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_stock_non_negative"),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"


# Case-insensitive name uniqueness, the backstop for the application-level check
Index("uq_products_name_lower", func.lower(Product.name), unique=True)


class InventoryHistory(Base):
    """
    A single recorded stock change of a product.

    Entries are written only when an update changes the stock value and
    are never modified afterwards.
    """
    __tablename__ = "inventory_history"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    change_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    changed_by = Column(String(255), nullable=False, default="admin")

    product = relationship("Product", back_populates="history")

    def __repr__(self):
        return (
            f"<InventoryHistory(product_id={self.product_id}, "
            f"{self.old_quantity} -> {self.new_quantity})>"
        )
