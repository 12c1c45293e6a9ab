import logging

import pytest

from stockpos.services import inventory_service
from stockpos.services.document_store import BatchConflictError, NotFoundError, store
from stockpos.services.inventory_service import InsufficientStockError
from stockpos.validation import ValidationError


class TestRestock:

    def test_creates_new_item(self, db_session):
        item = inventory_service.restock("Mouse", 10, "Peripherals", "500.00")
        assert item.get("name") == "Mouse"
        assert item.get("quantity") == 10
        assert item.get("category") == "Peripherals"
        assert item.get("price_cents") == 50000

    def test_existing_name_adds_quantity_and_overwrites_price(self, db_session):
        first = inventory_service.restock("Mouse", 10, "Peripherals", "500.00")
        second = inventory_service.restock("Mouse", 5, "Accessories", "450.50")

        assert second.id == first.id
        assert second.get("quantity") == 15
        assert second.get("category") == "Accessories"
        assert second.get("price_cents") == 45050
        assert len(store.list("stock")) == 1

    def test_concurrent_first_restocks_share_one_item(self, db_session, monkeypatch):
        real_find = inventory_service.find_item_by_name
        calls = {"n": 0}

        def _racing_find(name):
            found = real_find(name)
            calls["n"] += 1
            if calls["n"] == 1:
                # Another admin restocks the same new name after our read
                inventory_service.restock(name, 5, "Peripherals", "500.00")
            return found

        monkeypatch.setattr(inventory_service, "find_item_by_name", _racing_find)
        item = inventory_service.restock("Mouse", 5, "Peripherals", "450.00")

        assert calls["n"] == 3
        items = store.list("stock")
        assert [i.id for i in items] == [item.id]
        assert item.get("quantity") == 10
        assert item.get("price_cents") == 45000
        assert inventory_service.list_item_types() == ["Peripherals"]

    def test_stock_writes_have_their_own_retry_budget(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_WRITE_MAX_ATTEMPTS", 1)
        monkeypatch.setitem(app.config, "SALE_MAX_ATTEMPTS", 5)
        real_find = inventory_service.find_item_by_name
        calls = {"n": 0}

        def _racing_find(name):
            found = real_find(name)
            calls["n"] += 1
            if calls["n"] == 1:
                inventory_service.restock(name, 5, "Peripherals", "500.00")
            return found

        monkeypatch.setattr(inventory_service, "find_item_by_name", _racing_find)
        with pytest.raises(BatchConflictError):
            inventory_service.restock("Mouse", 5, "Peripherals", "450.00")

        assert calls["n"] == 2
        assert store.list("stock")[0].get("quantity") == 5

    def test_registers_item_type(self, db_session):
        inventory_service.restock("Mouse", 1, "Peripherals", "1")
        assert inventory_service.list_item_types() == ["Peripherals"]

    def test_keeps_notify_threshold(self, db_session):
        item = inventory_service.restock("Cable", 3, "Peripherals", "10", notify_threshold=2)
        assert item.get("notify_threshold") == 2
        assert inventory_service.is_low_stock(item) is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quantity": 0},
            {"quantity": -3},
            {"quantity": "1.5"},
            {"category": "  "},
            {"unit_price": "-1"},
            {"unit_price": "abc"},
            {"unit_price": "1.005"},
            {"name": ""},
            {"notify_threshold": 0},
        ],
    )
    def test_rejects_invalid_input(self, db_session, kwargs):
        args = {"name": "Mouse", "quantity": 1, "category": "Peripherals", "unit_price": "1.00"}
        args.update(kwargs)
        with pytest.raises(ValidationError):
            inventory_service.restock(**args)
        assert store.list("stock") == []


class TestAdjust:

    def test_updates_in_place(self, db_session):
        item = inventory_service.restock("Mouse", 10, "Peripherals", "5")
        updated = inventory_service.adjust(item.id, -4)
        assert updated.get("quantity") == 6

        updated = inventory_service.adjust(item.id, 3)
        assert updated.get("quantity") == 9

    def test_reaching_zero_removes_item(self, db_session):
        item = inventory_service.restock("Mouse", 2, "Peripherals", "5")
        assert inventory_service.adjust(item.id, -2) is None
        assert store.get("stock", item.id) is None

    def test_negative_result_rejected(self, db_session):
        item = inventory_service.restock("Mouse", 2, "Peripherals", "5")
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust(item.id, -3)
        assert store.get("stock", item.id).get("quantity") == 2

    def test_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust("missing", 1)

    def test_zero_delta_rejected(self, db_session):
        item = inventory_service.restock("Mouse", 2, "Peripherals", "5")
        with pytest.raises(ValidationError):
            inventory_service.adjust(item.id, 0)


class TestListing:

    def test_sorted_by_name_with_filters(self, db_session):
        inventory_service.restock("keyboard", 10, "Peripherals", "20")
        inventory_service.restock("Adapter", 10, "Cables", "5")
        inventory_service.restock("Mouse", 10, "Peripherals", "10")

        assert [i.get("name") for i in inventory_service.list_stock()] == ["Adapter", "keyboard", "Mouse"]
        assert [i.get("name") for i in inventory_service.list_stock(category="Peripherals")] == ["keyboard", "Mouse"]
        assert [i.get("name") for i in inventory_service.list_stock(search="OUS")] == ["Mouse"]

    def test_low_stock_uses_strict_threshold(self, db_session):
        inventory_service.restock("Four", 4, "Misc", "1")
        inventory_service.restock("Five", 5, "Misc", "1")
        inventory_service.restock("Custom", 9, "Misc", "1", notify_threshold=10)

        assert [i.get("name") for i in inventory_service.low_stock_items()] == ["Custom", "Four"]

    def test_delete(self, db_session):
        item = inventory_service.restock("Mouse", 3, "Peripherals", "5")
        inventory_service.delete_item(item.id)
        assert inventory_service.list_stock() == []
        with pytest.raises(NotFoundError):
            inventory_service.delete_item(item.id)


class TestSubscriptions:

    def test_mutations_are_pushed_sorted(self, db_session):
        received = []
        sub = inventory_service.subscribe_stock(lambda items: received.append([i.get("name") for i in items]))

        item = inventory_service.restock("Mouse", 3, "Peripherals", "5")
        inventory_service.restock("Adapter", 3, "Cables", "5")
        inventory_service.adjust(item.id, -3)
        sub.cancel()

        assert received == [[], ["Mouse"], ["Adapter", "Mouse"], ["Adapter"]]

    def test_low_stock_watcher_logs_transitions_once(self, db_session, caplog):
        item = inventory_service.restock("Mouse", 10, "Peripherals", "5")
        with caplog.at_level(logging.WARNING):
            inventory_service.adjust(item.id, -7)
            inventory_service.adjust(item.id, -1)

        messages = [r.getMessage() for r in caplog.records if "Low stock" in r.getMessage()]
        assert messages == ["Low stock: Mouse has 3 left (threshold 5)"]


class TestItemTypes:

    def test_add_is_idempotent(self, db_session):
        inventory_service.add_item_type("Cables")
        inventory_service.add_item_type("Cables")
        inventory_service.add_item_type("Adapters")
        assert inventory_service.list_item_types() == ["Adapters", "Cables"]
