import pytest

from database import create_document
from orders import InvalidTransition, attach_customers, can_transition, get_order, list_orders, update_status


def insert_order(db, status="pending", customer_id=None):
    doc = {"status": status, "customer_id": customer_id, "total_amount": 10.0, "order_number": "123456"}
    return create_document(db, "order", doc)


@pytest.mark.parametrize("current,target", [
    ("pending", "processing"),
    ("processing", "shipped"),
    ("shipped", "completed"),
    ("pending", "cancelled"),
    ("processing", "cancelled"),
    ("shipped", "cancelled"),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("pending", "shipped"),
    ("processing", "pending"),
    ("completed", "cancelled"),
    ("cancelled", "pending"),
    ("pending", "pending"),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)


def test_update_status(db):
    order_id = insert_order(db)
    order = update_status(db, order_id, "processing")
    assert order["status"] == "processing"
    assert order["items"] == []


def test_update_status_rejects_skips(db):
    order_id = insert_order(db)
    with pytest.raises(InvalidTransition):
        update_status(db, order_id, "completed")
    assert get_order(db, order_id)["status"] == "pending"


def test_update_missing_order(db):
    assert update_status(db, "0" * 24, "processing") is None
    assert update_status(db, "nope", "processing") is None


def test_get_order_includes_item_product_names(seeded_db):
    product = seeded_db["product"].find_one({"name": "Graphic Print Tee"})
    order_id = insert_order(seeded_db)
    seeded_db["order_item"].insert_one({"order_id": order_id, "product_id": str(product["_id"]), "quantity": 2, "price": 34.99})
    seeded_db["order_item"].insert_one({"order_id": order_id, "product_id": "gone", "quantity": 1, "price": 1.0})

    order = get_order(seeded_db, order_id)
    names = sorted(i["product"]["name"] for i in order["items"])
    assert names == ["Graphic Print Tee", "Unknown Product"]


def test_list_orders_filters_by_customer(db):
    insert_order(db, customer_id="c1")
    insert_order(db, customer_id="c2")
    assert [o["customer_id"] for o in list_orders(db, customer_id="c1")] == ["c1"]
    assert len(list_orders(db)) == 2


def test_guest_orders_get_placeholder_customer(db):
    order = get_order(db, insert_order(db))
    [order] = attach_customers(db, [order])
    assert order["customer"]["first_name"] == "Guest"
    assert order["customer"]["last_name"] == "User"
