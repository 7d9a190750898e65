"""
Order reads and status transitions

Orders move pending -> processing -> shipped -> completed, and can be
cancelled from any status that is not yet final.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import now_utc, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[str, set] = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

GUEST_CUSTOMER = {"first_name": "Guest", "last_name": "User", "email": None, "phone": None}


class InvalidTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def _attach_items(db: Database, orders: List[Dict[str, Any]], catalog=None) -> List[Dict[str, Any]]:
    ids = [o["id"] for o in orders]
    items = [serialize_doc(i) for i in db["order_item"].find({"order_id": {"$in": ids}})]

    product_ids = {i["product_id"] for i in items}
    oids = [oid for oid in (to_object_id(pid) for pid in product_ids) if oid is not None]
    names = {str(p["_id"]): p.get("name") for p in db["product"].find({"_id": {"$in": oids}}, {"name": 1})}
    if catalog is not None:
        for pid in product_ids - set(names):
            product = catalog.get(pid)
            if product:
                names[pid] = product.name

    by_order: Dict[str, List[Dict[str, Any]]] = {}
    for item in items:
        item["product"] = {"name": names.get(item["product_id"], "Unknown Product")}
        by_order.setdefault(item["order_id"], []).append(item)
    for order in orders:
        order["items"] = by_order.get(order["id"], [])
    return orders


def get_order(db: Database, order_id: str, catalog=None) -> Optional[Dict[str, Any]]:
    oid = to_object_id(order_id)
    if oid is None:
        return None
    doc = db["order"].find_one({"_id": oid})
    if not doc:
        return None
    return _attach_items(db, [serialize_doc(doc)], catalog)[0]


def list_orders(db: Database, customer_id: Optional[str] = None, catalog=None) -> List[Dict[str, Any]]:
    filt = {"customer_id": customer_id} if customer_id else {}
    docs = [serialize_doc(d) for d in db["order"].find(filt).sort("created_at", -1)]
    return _attach_items(db, docs, catalog)


def attach_customers(db: Database, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for order in orders:
        customer = None
        oid = to_object_id(order.get("customer_id") or "")
        if oid is not None:
            customer = db["customer"].find_one(
                {"_id": oid}, {"first_name": 1, "last_name": 1, "email": 1, "phone": 1}
            )
        if customer:
            customer.pop("_id", None)
            order["customer"] = customer
        else:
            order["customer"] = dict(GUEST_CUSTOMER)
    return orders


def update_status(db: Database, order_id: str, target: str, catalog=None) -> Optional[Dict[str, Any]]:
    """Apply a status transition. Returns None when the order does not exist."""
    oid = to_object_id(order_id)
    if oid is None:
        return None
    doc = db["order"].find_one({"_id": oid})
    if not doc:
        return None
    current = doc.get("status", "pending")
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
    # guard on the status we read so a concurrent change is not overwritten
    res = db["order"].update_one(
        {"_id": oid, "status": current},
        {"$set": {"status": target, "updated_at": now_utc()}},
    )
    if res.matched_count == 0:
        latest = db["order"].find_one({"_id": oid}) or {}
        raise InvalidTransition(latest.get("status", current), target)
    logger.info("Order %s moved from %s to %s", order_id, current, target)
    return get_order(db, order_id, catalog)
