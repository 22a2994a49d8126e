import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from fastapi import Request
from jinja2 import Environment
from playwright.sync_api import sync_playwright
from pymongo.database import Database

from config import Settings
from mailer import render_template

log = logging.getLogger(__name__)


class InvoiceRenderer:
    """Rasterizes HTML to PDF with headless Chromium."""

    def render_pdf(self, html: str, path: Path):
        with sync_playwright() as p:
            browser = p.chromium.launch()
            try:
                page = browser.new_page()
                page.set_content(html, wait_until="networkidle")
                page.pdf(path=str(path), format="A4", print_background=True)
            finally:
                browser.close()


def get_renderer(request: Request) -> InvoiceRenderer:
    return request.app.state.renderer


def new_invoice_number(now: datetime | None = None) -> str:
    now = now or datetime.utcnow()
    return f"INV-{now:%Y%m%d}-{random.randint(0, 99999):05d}"


def ensure_invoice_number(db: Database, order: Dict[str, Any]) -> str:
    if order.get("invoice_number"):
        return order["invoice_number"]
    number = new_invoice_number()
    db["order"].update_one(
        {"_id": order["_id"], "invoice_number": {"$exists": False}},
        {"$set": {"invoice_number": number}},
    )
    # a concurrent request may have won
    stored = db["order"].find_one({"_id": order["_id"]}, {"invoice_number": 1})
    order["invoice_number"] = stored.get("invoice_number", number)
    return order["invoice_number"]


def invoice_context(db: Database, order: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    customer = db["user"].find_one({"_id": order["user"]}, {"username": 1, "email": 1}) or {}
    lines = []
    for i, item in enumerate(order.get("items", []), start=1):
        lines.append({
            "index": i,
            "name": item.get("product_name", ""),
            "size": item.get("size_label") or "N/A",
            "quantity": item["quantity"],
            "price": item["price"],
            "total": round(item["price"] * item["quantity"], 2),
        })
    return {
        "company": {"name": settings.company_name, "email": settings.support_email},
        "order": order,
        "invoice_number": order["invoice_number"],
        "date": order.get("created_at", datetime.utcnow()).strftime("%d/%m/%Y"),
        "customer": customer,
        "shipping": order.get("shipping_address", {}),
        "lines": lines,
        "currency": "₹" if settings.currency == "INR" else settings.currency + " ",
    }


def build_invoice(db: Database, order: Dict[str, Any], renderer: InvoiceRenderer, settings: Settings,
                  templates: Environment) -> Path:
    ensure_invoice_number(db, order)
    html = render_template(templates, "invoice.html", invoice_context(db, order, settings))
    directory = Path(settings.invoice_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"invoice-{order['_id']}.pdf"
    try:
        renderer.render_pdf(html, path)
    except Exception:
        log.exception("Rendering invoice %s failed", order["invoice_number"])
        raise
    log.info("Invoice %s written to %s", order["invoice_number"], path)
    return path
