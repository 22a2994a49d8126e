import logging
import random
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from jinja2 import Environment
from pymongo.database import Database

import inventory
from auth import ensure_self_or_admin, get_current_admin, get_current_user, get_settings
from carts import clear_cart, load_items
from config import Settings
from database import create_document, get_db, get_documents, get_or_404, serialize_doc
from errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from invoices import InvoiceRenderer, build_invoice, get_renderer
from mailer import Mailer, get_mailer, get_templates
from payments import PaymentGateway, get_gateway, to_minor_units
from pricing import PricingPolicy, ResolvedLine, Totals, resolve_items
from schemas import (
    TERMINAL_STATUSES,
    GatewayOrderRequest,
    OrderStatus,
    PaymentStatus,
    PlaceOrderRequest,
    ShippingAddress,
    StatusUpdate,
    VerifyPaymentRequest,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/order", tags=["order"])


def new_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def checkout_lines(db: Database, user_id: ObjectId, raw_items: Optional[List[Dict[str, Any]]]) -> List[ResolvedLine]:
    """Lines for a checkout: the buy-now items when given, otherwise the user's cart.

    Cart lines are re-resolved against the live catalog so the server, not the
    cart snapshot, decides what is charged.
    """
    if raw_items:
        return resolve_items(db, raw_items)
    cart_items = load_items(db, user_id)
    if not cart_items:
        raise ValidationError("Cart is empty")
    return resolve_items(db, [
        {"product_id": i["product"], "size_id": i.get("size_entry"), "quantity": i["quantity"]}
        for i in cart_items
    ])


def order_document(user: Dict[str, Any], lines: List[ResolvedLine], totals: Totals, shipping: ShippingAddress,
                   payment_method: str, status: OrderStatus, **extra) -> Dict[str, Any]:
    doc = {
        "order_number": new_order_number(),
        "user": user["_id"],
        "items": [l.to_doc() for l in lines],
        "shipping_address": shipping.model_dump(),
        **totals.as_dict(),
        "payment_method": payment_method,
        "payment_status": PaymentStatus.PENDING.value,
        "status": status.value,
        "stock_decremented": False,
        "razorpay_order_id": None,
        "payment_id": None,
        "paid_at": None,
        "delivered_at": None,
    }
    doc.update(extra)
    return doc


def notify_placed(mailer: Mailer, user: Dict[str, Any], order: Dict[str, Any]):
    mailer.send_quietly(user["email"], f"Order {order['order_number']} received", "order_confirmation.html", {
        "user": user,
        "order": order,
    })


def transition(db: Database, order: Dict[str, Any], new_status: OrderStatus) -> Dict[str, Any]:
    current = OrderStatus(order["status"])
    if current == new_status:
        raise ValidationError(f"Order is already {current.value}")
    if new_status == OrderStatus.PENDING:
        raise ValidationError("Order cannot be moved back to Pending")
    if current == OrderStatus.DELIVERED and new_status in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
        raise ValidationError("Delivered order cannot be cancelled")
    if current in TERMINAL_STATUSES:
        raise ValidationError(f"{current.value} order cannot be changed")
    if current == OrderStatus.PENDING and new_status not in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
        raise ValidationError("Order is awaiting payment")

    now = datetime.utcnow()
    updates: Dict[str, Any] = {"status": new_status.value, "updated_at": now}
    if new_status == OrderStatus.DELIVERED:
        updates["delivered_at"] = now
    give_back = new_status in (OrderStatus.CANCELLED, OrderStatus.REJECTED) and order.get("stock_decremented")
    if give_back:
        updates["stock_decremented"] = False

    # only the request that actually moves the status gets to restore stock
    result = db["order"].update_one({"_id": order["_id"], "status": current.value}, {"$set": updates})
    if result.modified_count == 0:
        raise ConflictError("Order was changed by another request")
    if give_back:
        inventory.restore(db, [ResolvedLine.from_doc(i) for i in order["items"]])
    log.info("Order %s: %s -> %s", order["_id"], current.value, new_status.value)
    return db["order"].find_one({"_id": order["_id"]})


# Checkout

@router.post("/placeorder")
def place_order(payload: PlaceOrderRequest, db: Database = Depends(get_db), current=Depends(get_current_user),
                settings: Settings = Depends(get_settings), mailer: Mailer = Depends(get_mailer)):
    lines = checkout_lines(db, current["_id"], payload.items)
    totals = PricingPolicy.from_settings(settings).totals(lines)

    inventory.decrement(db, lines)
    doc = order_document(current, lines, totals, payload.shipping_address, payload.payment_method,
                         OrderStatus.RECEIVED, stock_decremented=True)
    try:
        order_id = create_document(db, "order", doc)
    except Exception:
        log.exception("Order persistence failed, restoring stock")
        inventory.restore(db, lines)
        raise

    clear_cart(db, current["_id"])
    order = db["order"].find_one({"_id": ObjectId(order_id)})
    log.info("COD order %s placed by %s for %s", order["order_number"], current["email"], totals.total_price)
    notify_placed(mailer, current, order)
    return {"message": "Order placed successfully", "order": serialize_doc(order)}


@router.post("/create-razorpay-order")
def create_razorpay_order(payload: GatewayOrderRequest, db: Database = Depends(get_db),
                          current=Depends(get_current_user), settings: Settings = Depends(get_settings),
                          gateway: PaymentGateway = Depends(get_gateway)):
    lines = checkout_lines(db, current["_id"], payload.items)
    totals = PricingPolicy.from_settings(settings).totals(lines)
    if payload.amount is not None and abs(payload.amount - totals.total_price) >= 0.01:
        log.warning("Client amount %s differs from server total %s for %s; using server total",
                    payload.amount, totals.total_price, current["email"])
    inventory.check_available(db, lines)

    doc = order_document(current, lines, totals, payload.shipping_address, "Razorpay", OrderStatus.PENDING)
    gateway_order = gateway.create_order(totals.total_price, receipt=doc["order_number"])
    doc["razorpay_order_id"] = gateway_order["id"]
    order_id = create_document(db, "order", doc)

    return {
        "message": "Payment order created",
        "order_id": order_id,
        "razorpay_order_id": gateway_order["id"],
        "amount": to_minor_units(totals.total_price),
        "currency": settings.currency,
        "key_id": settings.razorpay_key_id,
        **totals.as_dict(),
    }


def _unpayable(order: Dict[str, Any], payment_id: str) -> ValidationError:
    log.error("Payment %s captured for %s order %s; needs a manual refund",
              payment_id, order["status"], order["order_number"])
    return ValidationError(f"{order['status']} order cannot be paid")


@router.post("/verify-payment")
def verify_payment(payload: VerifyPaymentRequest, db: Database = Depends(get_db), current=Depends(get_current_user),
                   gateway: PaymentGateway = Depends(get_gateway), mailer: Mailer = Depends(get_mailer)):
    gateway.verify_signature(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature)

    order = db["order"].find_one({"razorpay_order_id": payload.razorpay_order_id})
    if not order:
        raise NotFoundError("Order not found")
    ensure_self_or_admin(current, order["user"])
    if order["payment_status"] == PaymentStatus.PAID.value:
        return {"message": "Payment already verified", "order": serialize_doc(order)}
    if order["status"] != OrderStatus.PENDING.value:
        raise _unpayable(order, payload.razorpay_payment_id)

    lines = [ResolvedLine.from_doc(i) for i in order["items"]]
    try:
        inventory.decrement(db, lines)
    except InsufficientStockError:
        log.error("Paid gateway order %s could not be fulfilled from stock", payload.razorpay_order_id)
        raise

    now = datetime.utcnow()
    result = db["order"].update_one(
        {"_id": order["_id"], "payment_status": PaymentStatus.PENDING.value, "status": OrderStatus.PENDING.value},
        {"$set": {
            "payment_status": PaymentStatus.PAID.value,
            "status": OrderStatus.RECEIVED.value,
            "payment_id": payload.razorpay_payment_id,
            "paid_at": now,
            "stock_decremented": True,
            "updated_at": now,
        }},
    )
    if result.modified_count == 0:
        # verified or cancelled concurrently; either way this request holds no stock
        inventory.restore(db, lines)
        order = db["order"].find_one({"_id": order["_id"]})
        if order["payment_status"] == PaymentStatus.PAID.value:
            return {"message": "Payment already verified", "order": serialize_doc(order)}
        raise _unpayable(order, payload.razorpay_payment_id)

    clear_cart(db, order["user"])
    order = db["order"].find_one({"_id": order["_id"]})
    log.info("Payment %s verified for order %s", payload.razorpay_payment_id, order["order_number"])
    notify_placed(mailer, current, order)
    return {"message": "Payment verified successfully", "order": serialize_doc(order)}


# Reads

def _with_customer(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(order)
    user = db["user"].find_one({"_id": order["user"]}, {"username": 1, "email": 1})
    out["customer"] = serialize_doc(user) if user else None
    return out


@router.get("/myorders")
def get_user_orders(db: Database = Depends(get_db), current=Depends(get_current_user)):
    orders = get_documents(db, "order", {"user": current["_id"]})
    return [serialize_doc(o) for o in orders]


@router.get("/order/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db), current=Depends(get_current_user)):
    order = get_or_404(db, "order", order_id, "Order")
    ensure_self_or_admin(current, order["user"])
    return _with_customer(db, order)


@router.get("/all")
def get_all_orders(status: Optional[OrderStatus] = None, db: Database = Depends(get_db),
                   _: dict = Depends(get_current_admin)):
    query = {"status": status.value} if status else {}
    return [_with_customer(db, o) for o in get_documents(db, "order", query)]


# Status changes

@router.put("/status/{order_id}")
def update_order_status(order_id: str, payload: StatusUpdate, db: Database = Depends(get_db),
                        _: dict = Depends(get_current_admin)):
    order = get_or_404(db, "order", order_id, "Order")
    order = transition(db, order, payload.status)
    return {"message": "Order status updated", "order": serialize_doc(order)}


@router.put("/cancel/{order_id}")
def cancel_order(order_id: str, db: Database = Depends(get_db), current=Depends(get_current_user)):
    order = get_or_404(db, "order", order_id, "Order")
    ensure_self_or_admin(current, order["user"])
    order = transition(db, order, OrderStatus.CANCELLED)
    return {"message": "Order cancelled", "order": serialize_doc(order)}


# Invoice

@router.get("/invoice/{order_id}")
def download_invoice(order_id: str, db: Database = Depends(get_db), current=Depends(get_current_user),
                     settings: Settings = Depends(get_settings), renderer: InvoiceRenderer = Depends(get_renderer),
                     templates: Environment = Depends(get_templates)):
    order = get_or_404(db, "order", order_id, "Order")
    ensure_self_or_admin(current, order["user"])
    if order["status"] == OrderStatus.PENDING.value:
        raise ValidationError("Invoice is available once the order is placed")
    path = build_invoice(db, order, renderer, settings, templates)
    return FileResponse(path, media_type="application/pdf", filename=f"{order['invoice_number']}.pdf")
