from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from inventory_api.api.deps import get_current_user
from inventory_api.config import get_settings
from inventory_api.database import get_db
from inventory_api.services.product_service import (
    ProductService,
    ProductNotFoundError,
    DuplicateProductError,
    ConcurrentUpdateError
)
from inventory_api.services.csv_service import (
    CsvService,
    EmptyImportError,
    ImportParseError,
    is_csv_upload
)
from inventory_api.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    PaginationMeta,
    InventoryHistoryResponse,
    ImportSummary
)

logger = logging.getLogger(__name__)

settings = get_settings()

router = APIRouter(
    prefix="/products",
    tags=["Products"],
    dependencies=[Depends(get_current_user)]
)


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List products",
    description="Get a filtered, sorted and paginated list of products."
)
def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(
        settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Items per page"
    ),
    category: Optional[str] = Query(None, description="Exact category"),
    name: Optional[str] = Query(None, description="Part of the product name"),
    sort: Optional[str] = Query("id", description="id, name, category, brand, stock or status"),
    order: Optional[str] = Query("desc", description="asc or desc"),
    db: Session = Depends(get_db)
):
    """
    Get a page of products.

    Unknown sort fields fall back to `id`; any order other than `asc`
    sorts descending. A `page` below 1 or a `limit` outside
    1..MAX_PAGE_SIZE is rejected with 400 instead of being clamped.
    """
    service = ProductService(db)
    products, total, total_pages = service.list_products(
        page=page,
        page_size=limit,
        category=category,
        name=name,
        sort=sort,
        order=order
    )

    return ProductListResponse(
        products=[ProductResponse.model_validate(p) for p in products],
        pagination=PaginationMeta(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1
        )
    )


@router.get(
    "/search",
    response_model=list[ProductResponse],
    summary="Search products by name",
    description="Case-insensitive substring search on product names, newest first."
)
def search_products(
    name: Optional[str] = Query(None, description="Text to look for in product names"),
    db: Session = Depends(get_db)
):
    """Search products by name without pagination."""
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name query parameter is required"
        )

    service = ProductService(db)
    return service.search(name)


@router.get(
    "/export",
    summary="Export products to CSV",
    description="Download all products as a CSV file.",
    response_class=Response
)
def export_products(db: Session = Depends(get_db)):
    """Export every product as `products.csv`."""
    content = CsvService(db).export_products()
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="products.csv"'}
    )


@router.post(
    "/import",
    response_model=ImportSummary,
    summary="Import products from CSV",
    description="""
    Upload a CSV file in the `csvFile` form field.

    Rows without a name are skipped. Rows whose name already exists
    (ignoring case) are skipped and listed under `duplicates`.
    """
)
def import_products(
    csv_file: Optional[UploadFile] = File(None, alias="csvFile"),
    db: Session = Depends(get_db)
):
    """Import products from an uploaded CSV file."""
    if csv_file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No CSV file uploaded"
        )

    try:
        if not is_csv_upload(csv_file.content_type, csv_file.filename):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only CSV files are allowed"
            )
        return CsvService(db).import_products(csv_file.file)
    except EmptyImportError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except ImportParseError as e:
        logger.error(f"CSV import of '{csv_file.filename}' failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    finally:
        # Release the spooled upload whatever the outcome
        csv_file.file.close()


@router.get(
    "/{product_id}/history",
    response_model=list[InventoryHistoryResponse],
    summary="Get inventory history",
    description="Stock changes of a product, newest first."
)
def get_product_history(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Get the stock change history of a product."""
    service = ProductService(db)
    return service.get_history(product_id)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
    description="Get a single product. Results are cached in Redis."
)
def get_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Get a product by ID."""
    service = ProductService(db)
    product = service.get_by_id_cached(product_id)

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    return product


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
    description="Create a product. Names must be unique regardless of letter case."
)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db)
):
    """
    Create a new product.

    - **name**: Product name (required)
    - **stock**: Initial stock, must be non-negative (default 0)
    - **unit**, **category**, **brand**, **status**, **image**: Optional
    """
    service = ProductService(db)
    try:
        return service.create(product_data)
    except DuplicateProductError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update a product",
    description="Replace all fields of a product. Stock changes are recorded in the inventory history."
)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db)
):
    """
    Update a product.

    Optional fields left out of the body are cleared. Pass `changedBy`
    to label the history entry (defaults to `admin`).
    """
    service = ProductService(db)
    try:
        return service.update(product_id, product_data)
    except ProductNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    except DuplicateProductError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except ConcurrentUpdateError as e:
        logger.warning(str(e))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Product was modified concurrently, please retry"
        )


@router.delete(
    "/{product_id}",
    summary="Delete a product",
    description="Delete a product and its inventory history."
)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """Delete a product."""
    service = ProductService(db)
    deleted = service.delete(product_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    return {"message": "Product deleted successfully"}
