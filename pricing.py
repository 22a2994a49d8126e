"""
Line items and money.

Item payloads reach the API in several shapes (``productId`` or ``product``,
``sizeId``, a size label, a populated size object...). ``normalize_item`` maps
all of them onto one ``ItemRequest``; ``resolve_line`` then looks the product
up once and snapshots everything an order or cart line needs. Nothing past
this module looks at raw item payloads.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from pymongo.database import Database

from config import Settings
from database import parse_object_id
from errors import NotFoundError, ValidationError


# Size selection

@dataclass(frozen=True)
class ById:
    id: str


@dataclass(frozen=True)
class ByLabel:
    label: str


SizeSelector = Union[ById, ByLabel]


# Discounts

@dataclass(frozen=True)
class Percentage:
    value: float

    def apply(self, price: float) -> float:
        return round(max(price - price * self.value / 100, 0), 2)

    def percent_of(self, price: float) -> float:
        return self.value


@dataclass(frozen=True)
class Flat:
    value: float

    def apply(self, price: float) -> float:
        return round(max(price - self.value, 0), 2)

    def percent_of(self, price: float) -> float:
        if not price:
            return 0
        return round(min(self.value, price) / price * 100, 2)


Discount = Union[Percentage, Flat]


def discount_from(amount: Optional[float], discount_type: Optional[str]) -> Optional[Discount]:
    if not amount or amount <= 0:
        return None
    if discount_type == "Percentage":
        if amount > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        return Percentage(amount)
    if discount_type == "Flat":
        return Flat(amount)
    raise ValidationError("discount_type must be Percentage or Flat when a discount is set")


def priced(price: Optional[float], discount: Optional[Discount]) -> Dict[str, Any]:
    """discounted_price / discount_percentage for one price point."""
    if price is None:
        return {"discounted_price": None, "discount_percentage": 0}
    if discount is None:
        return {"discounted_price": price, "discount_percentage": 0}
    return {"discounted_price": discount.apply(price), "discount_percentage": discount.percent_of(price)}


# Item payloads

@dataclass(frozen=True)
class ItemRequest:
    product_id: str
    quantity: int = 1
    size: Optional[SizeSelector] = None


PRODUCT_KEYS = ("product_id", "productId", "product")
SIZE_ID_KEYS = ("size_id", "sizeId")
SIZE_LABEL_KEYS = ("size_label", "sizeLabel")


def _first(raw: Dict[str, Any], keys) -> Any:
    for key in keys:
        if raw.get(key) not in (None, ""):
            return raw[key]
    return None


def _size_selector(raw: Dict[str, Any]) -> Optional[SizeSelector]:
    size_id = _first(raw, SIZE_ID_KEYS)
    if size_id is not None:
        return ById(str(size_id))
    label = _first(raw, SIZE_LABEL_KEYS)
    if label is not None:
        return ByLabel(str(label))
    size = raw.get("size")
    if size in (None, ""):
        return None
    if isinstance(size, dict):
        if size.get("_id") or size.get("id"):
            return ById(str(size.get("_id") or size.get("id")))
        if size.get("size"):
            return ByLabel(str(size["size"]))
        raise ValidationError("Unrecognized size value")
    size = str(size)
    return ById(size) if ObjectId.is_valid(size) else ByLabel(size)


def normalize_item(raw: Any) -> ItemRequest:
    if not isinstance(raw, dict):
        raise ValidationError("Each item must be an object")
    product = _first(raw, PRODUCT_KEYS)
    if isinstance(product, dict):
        product = product.get("_id") or product.get("id")
    if not product:
        raise ValidationError("Item is missing product_id")
    quantity = raw.get("quantity", 1)
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float, str)):
        raise ValidationError("quantity must be an integer")
    try:
        quantity = int(quantity)
    except ValueError:
        raise ValidationError("quantity must be an integer")
    return ItemRequest(product_id=str(product), quantity=quantity, size=_size_selector(raw))


# Resolution against the catalog

@dataclass
class ResolvedLine:
    product_id: ObjectId
    product_name: str
    quantity: int
    price: float
    discounted_price: Optional[float] = None
    discount_percentage: float = 0
    size_id: Optional[ObjectId] = None
    size_entry_id: Optional[ObjectId] = None
    size_label: Optional[str] = None
    image: Optional[str] = None

    @property
    def effective_price(self) -> float:
        return self.price if self.discounted_price is None else self.discounted_price

    @property
    def key(self):
        return (self.product_id, self.size_entry_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "product": self.product_id,
            "size": self.size_id,
            "size_entry": self.size_entry_id,
            "size_label": self.size_label,
            "quantity": self.quantity,
            "price": self.price,
            "discounted_price": self.discounted_price,
            "discount_percentage": self.discount_percentage,
            "product_name": self.product_name,
            "image": self.image,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "ResolvedLine":
        return cls(
            product_id=doc["product"],
            product_name=doc.get("product_name", ""),
            quantity=doc["quantity"],
            price=doc["price"],
            discounted_price=doc.get("discounted_price"),
            discount_percentage=doc.get("discount_percentage", 0),
            size_id=doc.get("size"),
            size_entry_id=doc.get("size_entry"),
            size_label=doc.get("size_label"),
            image=doc.get("image"),
        )


def match_size_entry(db: Database, product: Dict[str, Any], selector: SizeSelector) -> Optional[Dict[str, Any]]:
    entries = product.get("sizes") or []
    if isinstance(selector, ById):
        if not ObjectId.is_valid(selector.id):
            return None
        oid = ObjectId(selector.id)
        for entry in entries:
            if entry.get("_id") == oid or entry.get("size") == oid:
                return entry
        return None
    size_doc = db["size"].find_one({"size": selector.label})
    if not size_doc:
        return None
    for entry in entries:
        if entry.get("size") == size_doc["_id"]:
            return entry
    return None


def resolve_line(db: Database, item: ItemRequest) -> ResolvedLine:
    product = db["product"].find_one({"_id": parse_object_id(item.product_id, "product")})
    if not product:
        raise NotFoundError(f"Product not found: {item.product_id}")
    name = product.get("product_name", "")
    images = product.get("images") or []
    line = ResolvedLine(
        product_id=product["_id"],
        product_name=name,
        quantity=item.quantity,
        price=product.get("price") or 0,
        discounted_price=product.get("discounted_price"),
        discount_percentage=product.get("discount_percentage", 0),
        image=images[0].get("filepath") if images else None,
    )
    if item.size is None:
        if product.get("sizes"):
            raise ValidationError(f"Size required for {name}")
        return line

    entry = match_size_entry(db, product, item.size)
    if entry is None:
        raise ValidationError(f"Invalid size selected for {name}")
    size_doc = db["size"].find_one({"_id": entry.get("size")}) or {}
    line.price = entry.get("price", 0)
    line.discounted_price = entry.get("discounted_price")
    line.discount_percentage = entry.get("discount_percentage", 0)
    line.size_id = entry.get("size")
    line.size_entry_id = entry["_id"]
    line.size_label = size_doc.get("size")
    return line


def resolve_items(db: Database, raw_items: Iterable[Any]) -> List[ResolvedLine]:
    """Normalizes and resolves an order payload, merging repeated (product, size) pairs."""
    merged: Dict[Any, ResolvedLine] = {}
    for raw in raw_items:
        item = normalize_item(raw)
        if item.quantity < 1:
            raise ValidationError(f"Invalid quantity for product {item.product_id}")
        line = resolve_line(db, item)
        if line.key in merged:
            merged[line.key].quantity += line.quantity
        else:
            merged[line.key] = line
    if not merged:
        raise ValidationError("No items in order")
    return list(merged.values())


# Totals

@dataclass(frozen=True)
class Totals:
    subtotal: float
    discount: float
    tax: float
    total_price: float

    def as_dict(self) -> Dict[str, float]:
        return {"subtotal": self.subtotal, "discount": self.discount, "tax": self.tax, "total_price": self.total_price}


@dataclass(frozen=True)
class PricingPolicy:
    tax_percent: float = 0.0
    apply_line_discounts: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(tax_percent=settings.tax_percent, apply_line_discounts=settings.apply_line_discounts)

    def totals(self, lines: Iterable[ResolvedLine]) -> Totals:
        lines = list(lines)
        subtotal = round(sum(l.price * l.quantity for l in lines), 2)
        discount = 0.0
        if self.apply_line_discounts:
            discount = round(sum((l.price - l.effective_price) * l.quantity for l in lines), 2)
        tax = round((subtotal - discount) * self.tax_percent / 100, 2)
        # total is always derived from the three components
        total = round(subtotal - discount + tax, 2)
        return Totals(subtotal=subtotal, discount=discount, tax=tax, total_price=total)


def cart_total(lines: Iterable[ResolvedLine]) -> float:
    return round(sum(l.effective_price * l.quantity for l in lines), 2)
