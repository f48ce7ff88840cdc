"""Concurrent stock updates against a file-backed SQLite database."""
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from inventory_api.database import Base
from inventory_api.models.product import InventoryHistory, Product
from inventory_api.schemas.product import ProductUpdate
from inventory_api.services.product_service import ConcurrentUpdateError, ProductService


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'inventory.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_concurrent_updates_keep_history_chained(file_sessions, monkeypatch):
    """Two updates that both read stock 10 still record a consistent chain."""
    with file_sessions() as session:
        product = Product(name="Widget", stock=10)
        session.add(product)
        session.commit()
        product_id = product.id

    # Hold both updates after their first read until the other has read too
    both_read = threading.Barrier(2, timeout=10)
    local = threading.local()
    original_find_by_name = ProductService.find_by_name

    def find_by_name_after_both_read(self, name, exclude_id=None):
        if not getattr(local, "waited", False):
            local.waited = True
            both_read.wait()
        return original_find_by_name(self, name, exclude_id=exclude_id)

    monkeypatch.setattr(ProductService, "find_by_name", find_by_name_after_both_read)

    errors = []

    def set_stock(stock):
        with file_sessions() as session:
            try:
                ProductService(session).update(product_id, ProductUpdate(name="Widget", stock=stock))
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=set_stock, args=(stock,)) for stock in (7, 5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []

    with file_sessions() as session:
        entries = (
            session.query(InventoryHistory)
            .filter(InventoryHistory.product_id == product_id)
            .order_by(InventoryHistory.id)
            .all()
        )
        changes = [(e.old_quantity, e.new_quantity) for e in entries]
        final_stock = session.get(Product, product_id).stock

    assert changes in ([(10, 7), (7, 5)], [(10, 5), (5, 7)])
    assert final_stock == changes[-1][1]


def test_update_gives_up_when_stock_keeps_changing(file_sessions, monkeypatch):
    """Every compare-and-set attempt losing the race ends in ConcurrentUpdateError."""
    with file_sessions() as session:
        product = Product(name="Widget", stock=10)
        session.add(product)
        session.commit()
        product_id = product.id

    original_find_by_name = ProductService.find_by_name
    bumps = []

    def find_by_name_with_interference(self, name, exclude_id=None):
        # Another writer changes the stock between our read and our write
        with file_sessions() as other:
            other.get(Product, product_id).stock += 1
            other.commit()
        bumps.append(1)
        return original_find_by_name(self, name, exclude_id=exclude_id)

    monkeypatch.setattr(ProductService, "find_by_name", find_by_name_with_interference)

    with file_sessions() as session:
        with pytest.raises(ConcurrentUpdateError):
            ProductService(session).update(product_id, ProductUpdate(name="Widget", stock=3))

    assert len(bumps) == ProductService.UPDATE_ATTEMPTS
    with file_sessions() as session:
        assert session.query(InventoryHistory).count() == 0
