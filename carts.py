import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends
from pymongo.database import Database

from auth import get_current_user
from database import get_db, parse_object_id
from errors import NotFoundError, ValidationError
from pricing import ResolvedLine, cart_total, normalize_item, resolve_line
from schemas import CartQuantityUpdate

log = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


def load_items(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    cart = db["cart"].find_one({"user": user_id})
    return list(cart.get("items", [])) if cart else []


def save_items(db: Database, user_id: ObjectId, items: List[Dict[str, Any]]):
    now = datetime.utcnow()
    db["cart"].update_one(
        {"user": user_id},
        {"$set": {"items": items, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )


def clear_cart(db: Database, user_id: ObjectId):
    db["cart"].update_one({"user": user_id}, {"$set": {"items": [], "updated_at": datetime.utcnow()}})


def cart_lines(db: Database, user_id: ObjectId) -> List[ResolvedLine]:
    return [ResolvedLine.from_doc(i) for i in load_items(db, user_id)]


def add_line(items: List[Dict[str, Any]], line: ResolvedLine, quantity: int) -> Dict[str, Any]:
    """Merges into the line for the same (product, size), or appends a new one."""
    for item in items:
        if item["product"] == line.product_id and item.get("size_entry") == line.size_entry_id:
            snapshot = line.to_doc()
            snapshot["quantity"] = max(1, item["quantity"] + quantity)
            item.update(snapshot)
            return item
    item = line.to_doc()
    item["_id"] = ObjectId()
    item["quantity"] = max(1, quantity)
    items.append(item)
    return item


def format_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "_id": str(item["_id"]),
        "product_id": str(item["product"]),
        "product_name": item.get("product_name"),
        "image": item.get("image"),
        "size_id": str(item["size"]) if item.get("size") else None,
        "size_entry_id": str(item["size_entry"]) if item.get("size_entry") else None,
        "size": item.get("size_label"),
        "quantity": item["quantity"],
        "price": item["price"],
        "discounted_price": item.get("discounted_price"),
        "discount_percentage": item.get("discount_percentage", 0),
    }


def format_cart(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "items": [format_item(i) for i in items],
        "total_price": cart_total(ResolvedLine.from_doc(i) for i in items),
    }


def _find_by_id(items: List[Dict[str, Any]], item_id: str) -> Dict[str, Any]:
    oid = parse_object_id(item_id, "cart item")
    for item in items:
        if item["_id"] == oid:
            return item
    raise NotFoundError("Item not found")


def _find_by_pair(db: Database, items: List[Dict[str, Any]], payload: Dict[str, Any]) -> Dict[str, Any]:
    line = resolve_line(db, normalize_item(payload))
    for item in items:
        if item["product"] == line.product_id and item.get("size_entry") == line.size_entry_id:
            return item
    raise NotFoundError("Item not in cart")


@router.post("/addtocart")
def add_to_cart(payload: Dict[str, Any] = Body(...), db: Database = Depends(get_db),
                current=Depends(get_current_user)):
    request = normalize_item(payload)
    line = resolve_line(db, request)
    items = load_items(db, current["_id"])
    add_line(items, line, request.quantity)
    save_items(db, current["_id"], items)
    return {"message": "Item added to cart successfully", **format_cart(items)}


@router.get("/getcart")
def get_cart(db: Database = Depends(get_db), current=Depends(get_current_user)):
    return format_cart(load_items(db, current["_id"]))


@router.put("/updatecart/{item_id}")
def update_cart_item(item_id: str, payload: CartQuantityUpdate, db: Database = Depends(get_db),
                     current=Depends(get_current_user)):
    cart = db["cart"].find_one({"user": current["_id"]})
    if not cart:
        raise NotFoundError("Cart not found")
    items = cart.get("items", [])
    item = _find_by_id(items, item_id)
    item["quantity"] = max(1, payload.quantity)
    save_items(db, current["_id"], items)
    return {"message": "Cart updated", **format_cart(items)}


@router.put("/updatecart")
def update_cart_item_by_product(payload: Dict[str, Any] = Body(...), db: Database = Depends(get_db),
                                current=Depends(get_current_user)):
    if "quantity" not in payload:
        raise ValidationError("quantity is required")
    cart = db["cart"].find_one({"user": current["_id"]})
    if not cart:
        raise NotFoundError("Cart not found")
    items = cart.get("items", [])
    item = _find_by_pair(db, items, payload)
    item["quantity"] = max(1, normalize_item(payload).quantity)
    save_items(db, current["_id"], items)
    return {"message": "Cart updated", **format_cart(items)}


@router.delete("/removecart/{item_id}")
def remove_cart_item(item_id: str, db: Database = Depends(get_db), current=Depends(get_current_user)):
    cart = db["cart"].find_one({"user": current["_id"]})
    if not cart:
        raise NotFoundError("Cart not found")
    items = cart.get("items", [])
    item = _find_by_id(items, item_id)
    items = [i for i in items if i["_id"] != item["_id"]]
    save_items(db, current["_id"], items)
    return {"message": "Item removed", **format_cart(items)}


@router.delete("/removecart")
def remove_cart_item_by_product(product_id: str, size: Optional[str] = None, db: Database = Depends(get_db),
                                current=Depends(get_current_user)):
    cart = db["cart"].find_one({"user": current["_id"]})
    if not cart:
        raise NotFoundError("Cart not found")
    items = cart.get("items", [])
    item = _find_by_pair(db, items, {"product_id": product_id, "size": size})
    items = [i for i in items if i["_id"] != item["_id"]]
    save_items(db, current["_id"], items)
    return {"message": "Item removed", **format_cart(items)}


@router.delete("/clearcart")
def clear(db: Database = Depends(get_db), current=Depends(get_current_user)):
    clear_cart(db, current["_id"])
    return {"message": "Cart cleared"}
