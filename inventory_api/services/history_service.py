from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, List
import logging

from inventory_api.config import get_settings
from inventory_api.models.product import InventoryHistory

logger = logging.getLogger(__name__)

settings = get_settings()


class InventoryHistoryService:
    """
    Records stock changes made through product updates.

    Writing history is best-effort: the product update is committed
    before the entry is written, and a failed history write is logged
    and rolled back without undoing the update.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_stock_change(
        self,
        product_id: int,
        old_quantity: int,
        new_quantity: int,
        changed_by: Optional[str] = None
    ) -> Optional[InventoryHistory]:
        """
        Append a history entry if the stock value actually changed.

        Args:
            product_id: Product whose stock changed
            old_quantity: Stock read before the update was applied
            new_quantity: Stock written by the update
            changed_by: Actor label, defaults to the configured sentinel

        Returns:
            The created entry, or None if nothing was recorded
        """
        if old_quantity == new_quantity:
            return None

        label = changed_by or settings.DEFAULT_CHANGED_BY
        entry = InventoryHistory(
            product_id=product_id,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            changed_by=label,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error logging inventory history for product #{product_id}: {e}")
            return None

        logger.info(
            f"Stock of product #{product_id} changed {old_quantity} -> {new_quantity} "
            f"by {label}"
        )
        return entry

    def list_for_product(self, product_id: int) -> List[InventoryHistory]:
        """Get history entries of a product, newest first."""
        return (
            self.db.query(InventoryHistory)
            .filter(InventoryHistory.product_id == product_id)
            .order_by(InventoryHistory.change_date.desc(), InventoryHistory.id.desc())
            .all()
        )
