import pytest

import inventory
from errors import InsufficientStockError
from pricing import resolve_items


def stock_of(db, product_id):
    return db["product"].find_one({"_id": product_id})["stock"]


def size_stock(db, product_id, entry_id):
    product = db["product"].find_one({"_id": product_id})
    return next(e["stock"] for e in product["sizes"] if e["_id"] == entry_id)


def test_decrement_flat_product(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.a), "quantity": 4}])
    inventory.decrement(db, lines)
    assert stock_of(db, catalog.a) == 6


def test_decrement_sized_product_moves_entry_and_total(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.sized), "size": "S", "quantity": 2}])
    inventory.decrement(db, lines)
    assert size_stock(db, catalog.sized, catalog.entry_s) == 1
    assert size_stock(db, catalog.sized, catalog.entry_m) == 2
    assert stock_of(db, catalog.sized) == 3


def test_decrement_refuses_more_than_available(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.sized), "size": "S", "quantity": 5}])
    with pytest.raises(InsufficientStockError, match=r"Kurta \(S\)"):
        inventory.decrement(db, lines)
    assert size_stock(db, catalog.sized, catalog.entry_s) == 3
    assert stock_of(db, catalog.sized) == 5


def test_partial_failure_rolls_back_earlier_lines(db, catalog):
    lines = resolve_items(db, [
        {"productId": str(catalog.a), "quantity": 3},
        {"productId": str(catalog.b), "quantity": 6},
    ])
    with pytest.raises(InsufficientStockError):
        inventory.decrement(db, lines)
    assert stock_of(db, catalog.a) == 10
    assert stock_of(db, catalog.b) == 5


def test_exact_stock_can_be_taken(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.b), "quantity": 5}])
    inventory.decrement(db, lines)
    assert stock_of(db, catalog.b) == 0


def test_check_available_does_not_write(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.a), "quantity": 10}])
    inventory.check_available(db, lines)
    assert stock_of(db, catalog.a) == 10

    too_many = resolve_items(db, [{"productId": str(catalog.a), "quantity": 11}])
    with pytest.raises(InsufficientStockError):
        inventory.check_available(db, too_many)


def test_restore_undoes_decrement(db, catalog):
    lines = resolve_items(db, [
        {"productId": str(catalog.a), "quantity": 2},
        {"productId": str(catalog.sized), "sizeId": str(catalog.entry_m), "quantity": 2},
    ])
    inventory.decrement(db, lines)
    inventory.restore(db, lines)
    assert stock_of(db, catalog.a) == 10
    assert size_stock(db, catalog.sized, catalog.entry_m) == 2
    assert stock_of(db, catalog.sized) == 5


def test_restore_skips_deleted_products(db, catalog):
    lines = resolve_items(db, [{"productId": str(catalog.a), "quantity": 1}])
    db["product"].delete_one({"_id": catalog.a})
    inventory.restore(db, lines)
    assert db["product"].find_one({"_id": catalog.a}) is None
