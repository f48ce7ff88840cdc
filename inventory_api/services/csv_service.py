from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import BinaryIO, Iterable, Optional
from dataclasses import dataclass
import csv
import io
import logging

from inventory_api.models.product import Product
from inventory_api.schemas.product import ImportDuplicate, ImportSummary
from inventory_api.services.product_service import ProductService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["id", "name", "unit", "category", "brand", "stock", "status", "image"]

OPTIONAL_TEXT_FIELDS = ("unit", "category", "brand", "status", "image")

CSV_CONTENT_TYPES = {"text/csv", "application/csv"}


class EmptyImportError(Exception):
    """Exception raised when an uploaded CSV has no data rows."""
    pass


class ImportParseError(Exception):
    """Exception raised when an uploaded file cannot be read as CSV."""
    pass


@dataclass
class RowOutcome:
    """Result of importing one CSV row."""
    added: bool = False
    duplicate: Optional[ImportDuplicate] = None


def is_csv_upload(content_type: Optional[str], filename: Optional[str]) -> bool:
    """Accept a file if either its media type or its extension says CSV."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    return media_type in CSV_CONTENT_TYPES or (filename or "").lower().endswith(".csv")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _parse_stock(value: Optional[str]) -> int:
    """Parse a stock cell; unreadable or negative values count as 0."""
    try:
        stock = int((value or "").strip())
    except ValueError:
        return 0
    return stock if stock >= 0 else 0


def _format_cell(value) -> str:
    return "" if value is None else str(value)


class CsvService:
    """
    Bulk import and export of products as CSV.

    Export writes every product with a fixed column order. Import reads
    candidate rows, skips nameless rows and names that already exist
    (ignoring case), inserts the rest and folds the row outcomes into an
    ImportSummary. Rows are committed one by one, so a failure part way
    through leaves the rows before it in place.
    """

    def __init__(self, db: Session):
        self.db = db
        self.products = ProductService(db)

    def export_products(self) -> str:
        """Serialize all products, newest first, to CSV text."""
        rows = self.db.query(Product).order_by(Product.id.desc()).all()

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for product in rows:
            writer.writerow([_format_cell(getattr(product, column)) for column in EXPORT_COLUMNS])

        logger.info(f"Exported {len(rows)} products to CSV")
        return buffer.getvalue()

    def read_candidates(self, stream: BinaryIO) -> list[dict]:
        """
        Parse an uploaded CSV into candidate product dicts.

        Raises:
            ImportParseError: If the bytes are not valid UTF-8 CSV
            EmptyImportError: If the file has no data rows
        """
        try:
            text = stream.read().decode("utf-8-sig")
            reader = csv.DictReader(io.StringIO(text, newline=""))
            rows = list(reader)
        except (UnicodeDecodeError, csv.Error) as e:
            raise ImportParseError(f"Error parsing CSV file: {e}")

        if not rows:
            raise EmptyImportError("CSV file is empty or invalid")

        candidates = []
        for row in rows:
            candidate = {field: _clean(row.get(field)) for field in OPTIONAL_TEXT_FIELDS}
            candidate["name"] = (row.get("name") or "").strip()
            candidate["stock"] = _parse_stock(row.get("stock"))
            candidates.append(candidate)
        return candidates

    def import_products(self, stream: BinaryIO) -> ImportSummary:
        """Import products from an uploaded CSV stream."""
        candidates = self.read_candidates(stream)
        summary = self._summarize(self._import_row(candidate) for candidate in candidates)
        logger.info(
            f"CSV import finished: {summary.added} added, {summary.skipped} skipped, "
            f"{len(summary.duplicates)} duplicates"
        )
        return summary

    def _import_row(self, candidate: dict) -> RowOutcome:
        name = candidate["name"]
        if not name:
            return RowOutcome()

        existing = self.products.find_by_name(name)
        if existing:
            return RowOutcome(duplicate=ImportDuplicate(name=existing.name, existing_id=existing.id))

        self.db.add(Product(**candidate))
        try:
            self.db.commit()
        except IntegrityError:
            # The unique name index caught a duplicate the lookup missed
            self.db.rollback()
            existing = self.products.find_by_name(name)
            if existing:
                return RowOutcome(duplicate=ImportDuplicate(name=existing.name, existing_id=existing.id))
            logger.warning(f"Skipping CSV row '{name}': constraint violation")
            return RowOutcome()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error inserting product '{name}' from CSV: {e}")
            return RowOutcome()

        return RowOutcome(added=True)

    @staticmethod
    def _summarize(outcomes: Iterable[RowOutcome]) -> ImportSummary:
        """Fold row outcomes into the aggregate counters."""
        summary = ImportSummary()
        for outcome in outcomes:
            if outcome.added:
                summary.added += 1
                continue
            summary.skipped += 1
            if outcome.duplicate:
                summary.duplicates.append(outcome.duplicate)
        return summary
