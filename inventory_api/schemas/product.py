from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    unit: Optional[str] = Field(None, max_length=64, description="Unit of measure")
    category: Optional[str] = Field(None, max_length=255, description="Product category")
    brand: Optional[str] = Field(None, max_length=255, description="Brand name")
    stock: int = Field(0, ge=0, description="Stock on hand (must be non-negative)")
    status: Optional[str] = Field(None, max_length=64, description="Free-text status label")
    image: Optional[str] = Field(None, max_length=1024, description="Image URL")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value

    @field_validator("unit", "category", "brand", "status", "image")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    pass


class ProductUpdate(ProductBase):
    """
    Schema for replacing an existing product.

    Every product field is written; omitted optional fields become null.
    ``changedBy`` labels the inventory history entry if stock changes.
    """
    changed_by: Optional[str] = Field(
        None,
        alias="changedBy",
        max_length=255,
        description="Who made the change (recorded in inventory history)"
    )

    model_config = ConfigDict(populate_by_name=True)


class ProductResponse(BaseModel):
    """Schema for product response including all fields."""
    id: int
    name: str
    unit: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    stock: int
    status: Optional[str] = None
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaginationMeta(BaseModel):
    """Pagination block of the product listing (serialized in camelCase)."""
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""
    products: list[ProductResponse]
    pagination: PaginationMeta


class InventoryHistoryResponse(BaseModel):
    """Schema for one stock change entry."""
    id: int
    product_id: int
    old_quantity: int
    new_quantity: int
    change_date: datetime
    changed_by: str

    model_config = ConfigDict(from_attributes=True)


class ImportDuplicate(BaseModel):
    """A CSV row skipped because the product name already exists."""
    name: str
    existing_id: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportSummary(BaseModel):
    """Aggregate result of a CSV import."""
    added: int = 0
    skipped: int = 0
    duplicates: list[ImportDuplicate] = Field(default_factory=list)
