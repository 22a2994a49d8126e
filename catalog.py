import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import get_current_admin
from database import create_document, get_db, get_documents, get_or_404, parse_object_id, serialize_doc
from errors import ConflictError, ValidationError
from pricing import discount_from, priced
from schemas import (
    CategoryIn,
    CategoryUpdate,
    ProductIn,
    ProductSizeIn,
    ProductUpdate,
    SizeIn,
    SubcategoryIn,
    SubcategoryUpdate,
)

log = logging.getLogger(__name__)

size_router = APIRouter(prefix="/size", tags=["size"])
category_router = APIRouter(prefix="/category", tags=["category"])
subcategory_router = APIRouter(prefix="/subcategory", tags=["subcategory"])
product_router = APIRouter(prefix="/product", tags=["product"])


def _ensure_exists(db: Database, collection_name: str, value: Any, label: str) -> ObjectId:
    try:
        oid = parse_object_id(value, label)
    except ValidationError:
        raise ValidationError(f"Invalid {label}: {value}")
    if not db[collection_name].find_one({"_id": oid}, {"_id": 1}):
        raise ValidationError(f"Invalid {label}: {value}")
    return oid


def _ensure_unique(db: Database, collection_name: str, field: str, value: str, label: str,
                   exclude_id: Optional[ObjectId] = None):
    existing = db[collection_name].find_one({field: value})
    if existing and existing["_id"] != exclude_id:
        raise ConflictError(f"{label} already exists")


def _names(db: Database, collection_name: str, field: str) -> Dict[ObjectId, str]:
    return {d["_id"]: d.get(field) for d in db[collection_name].find({}, {field: 1})}


# Sizes

@size_router.post("/addsize", status_code=201)
def add_size(payload: SizeIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    _ensure_unique(db, "size", "size", payload.size, "Size")
    new_id = create_document(db, "size", payload)
    return {"message": "Size added successfully", "data": serialize_doc(db["size"].find_one({"_id": ObjectId(new_id)}))}


@size_router.get("/getallsize")
def get_all_sizes(db: Database = Depends(get_db)):
    return {"message": "Sizes fetched successfully", "data": serialize_doc(get_documents(db, "size"))}


@size_router.get("/getsize/{size_id}")
def get_size(size_id: str, db: Database = Depends(get_db)):
    return {"message": "Size fetched successfully", "data": serialize_doc(get_or_404(db, "size", size_id, "Size"))}


@size_router.put("/updatesize/{size_id}")
def update_size(size_id: str, payload: SizeIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "size", size_id, "Size")
    _ensure_unique(db, "size", "size", payload.size, "Size", exclude_id=doc["_id"])
    db["size"].update_one({"_id": doc["_id"]}, {"$set": {"size": payload.size, "updated_at": datetime.utcnow()}})
    return {"message": "Size updated successfully", "data": serialize_doc(db["size"].find_one({"_id": doc["_id"]}))}


@size_router.delete("/deletesize/{size_id}")
def delete_size(size_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "size", size_id, "Size")
    db["size"].delete_one({"_id": doc["_id"]})
    return {"message": "Size deleted successfully", "data": serialize_doc(doc)}


# Categories

@category_router.post("/addcategory", status_code=201)
def add_category(payload: CategoryIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    _ensure_unique(db, "category", "categoryname", payload.categoryname, "Category")
    new_id = create_document(db, "category", payload)
    doc = db["category"].find_one({"_id": ObjectId(new_id)})
    return {"message": "Category created successfully", "data": serialize_doc(doc)}


@category_router.get("/getallcategory")
def get_all_categories(db: Database = Depends(get_db)):
    return {"message": "Categories fetched successfully", "data": serialize_doc(get_documents(db, "category"))}


@category_router.get("/getcategory/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    doc = get_or_404(db, "category", category_id, "Category")
    return {"message": "Category fetched successfully", "data": serialize_doc(doc)}


@category_router.put("/updatecategory/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, db: Database = Depends(get_db),
                    _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "category", category_id, "Category")
    updates = payload.model_dump(exclude_none=True)
    if "categoryname" in updates:
        _ensure_unique(db, "category", "categoryname", updates["categoryname"], "Category", exclude_id=doc["_id"])
    updates["updated_at"] = datetime.utcnow()
    db["category"].update_one({"_id": doc["_id"]}, {"$set": updates})
    doc = db["category"].find_one({"_id": doc["_id"]})
    return {"message": "Category updated successfully", "data": serialize_doc(doc)}


@category_router.delete("/deletecategory/{category_id}")
def delete_category(category_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "category", category_id, "Category")
    db["category"].delete_one({"_id": doc["_id"]})
    return {"message": "Category deleted successfully"}


# Subcategories

def format_subcategory(db: Database, sub: Dict[str, Any]) -> Dict[str, Any]:
    category = db["category"].find_one({"_id": sub.get("category")}) if sub.get("category") else None
    sizes = list(db["size"].find({"_id": {"$in": sub.get("sizes", [])}}))
    return {
        "_id": str(sub["_id"]),
        "subcategory": sub["subcategory"],
        "category_id": str(category["_id"]) if category else None,
        "category": category["categoryname"] if category else "Unknown",
        "sizes": [{"_id": str(s["_id"]), "size": s["size"]} for s in sizes],
    }


@subcategory_router.post("/addsubcategory", status_code=201)
def add_subcategory(payload: SubcategoryIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    _ensure_unique(db, "subcategory", "subcategory", payload.subcategory, "Subcategory")
    doc = {
        "subcategory": payload.subcategory,
        "category": _ensure_exists(db, "category", payload.category, "category"),
        "sizes": [_ensure_exists(db, "size", s, "size") for s in payload.sizes],
    }
    new_id = create_document(db, "subcategory", doc)
    sub = db["subcategory"].find_one({"_id": ObjectId(new_id)})
    return {"message": "Subcategory created successfully", "data": format_subcategory(db, sub)}


@subcategory_router.get("/getallsubcategory")
def get_all_subcategories(db: Database = Depends(get_db)):
    subs = get_documents(db, "subcategory")
    return {"message": "Subcategories fetched successfully", "data": [format_subcategory(db, s) for s in subs]}


@subcategory_router.get("/getsubcategory/{subcategory_id}")
def get_subcategory(subcategory_id: str, db: Database = Depends(get_db)):
    sub = get_or_404(db, "subcategory", subcategory_id, "Subcategory")
    return {"message": "Subcategory fetched successfully", "data": format_subcategory(db, sub)}


@subcategory_router.put("/updatesubcategory/{subcategory_id}")
def update_subcategory(subcategory_id: str, payload: SubcategoryUpdate, db: Database = Depends(get_db),
                       _: dict = Depends(get_current_admin)):
    sub = get_or_404(db, "subcategory", subcategory_id, "Subcategory")
    updates: Dict[str, Any] = {}
    if payload.subcategory is not None:
        _ensure_unique(db, "subcategory", "subcategory", payload.subcategory, "Subcategory", exclude_id=sub["_id"])
        updates["subcategory"] = payload.subcategory
    if payload.category is not None:
        updates["category"] = _ensure_exists(db, "category", payload.category, "category")
    # sizes are left alone unless sent
    if payload.sizes is not None:
        updates["sizes"] = [_ensure_exists(db, "size", s, "size") for s in payload.sizes]
    updates["updated_at"] = datetime.utcnow()
    db["subcategory"].update_one({"_id": sub["_id"]}, {"$set": updates})
    sub = db["subcategory"].find_one({"_id": sub["_id"]})
    return {"message": "Subcategory updated successfully", "data": format_subcategory(db, sub)}


@subcategory_router.delete("/deletesubcategory/{subcategory_id}")
def delete_subcategory(subcategory_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    sub = get_or_404(db, "subcategory", subcategory_id, "Subcategory")
    formatted = format_subcategory(db, sub)
    db["subcategory"].delete_one({"_id": sub["_id"]})
    return {"message": "Subcategory deleted successfully", "data": formatted}


# Products

def build_size_entries(db: Database, sizes: List[ProductSizeIn], existing: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Size entries for a product; an entry for an already-listed size keeps its _id."""
    existing_ids = {e["size"]: e["_id"] for e in existing if e.get("size") is not None}
    entries = []
    seen = set()
    for s in sizes:
        size_id = _ensure_exists(db, "size", s.size, "size")
        if size_id in seen:
            raise ValidationError(f"Duplicate size: {s.size}")
        seen.add(size_id)
        entries.append({
            "_id": existing_ids.get(size_id, ObjectId()),
            "size": size_id,
            "price": s.price,
            "stock": s.stock,
        })
    return entries


def apply_derived_fields(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Recomputes price/stock and discounted prices from the authoritative fields."""
    discount = discount_from(doc.get("discount"), doc.get("discount_type"))
    sizes = doc.get("sizes") or []
    if sizes:
        for entry in sizes:
            entry.update(priced(entry["price"], discount))
        doc["stock"] = sum(e["stock"] for e in sizes)
        doc["price"] = min(e["price"] for e in sizes)
    else:
        if doc.get("price") is None:
            raise ValidationError("price is required for a product without sizes")
        if doc.get("stock") is None:
            doc["stock"] = 0
    doc.update(priced(doc["price"], discount))
    return doc


def format_product(doc: Dict[str, Any], categories: Dict, subcategories: Dict, sizes: Dict) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out["category_name"] = categories.get(doc.get("category"))
    out["subcategory_name"] = subcategories.get(doc.get("subcategory"))
    for entry, raw in zip(out.get("sizes") or [], doc.get("sizes") or []):
        entry["size_label"] = sizes.get(raw.get("size"))
    return out


def _formatter(db: Database):
    categories = _names(db, "category", "categoryname")
    subcategories = _names(db, "subcategory", "subcategory")
    sizes = _names(db, "size", "size")
    return lambda doc: format_product(doc, categories, subcategories, sizes)


@product_router.post("/addproduct", status_code=201)
def add_product(payload: ProductIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    doc = payload.model_dump(exclude={"sizes", "images"})
    doc["category"] = _ensure_exists(db, "category", payload.category, "category")
    doc["subcategory"] = _ensure_exists(db, "subcategory", payload.subcategory, "subcategory")
    doc["sizes"] = build_size_entries(db, payload.sizes, [])
    doc["images"] = [img.model_dump() for img in payload.images]
    apply_derived_fields(doc)
    new_id = create_document(db, "product", doc)
    log.info("Product %s created", new_id)
    created = db["product"].find_one({"_id": ObjectId(new_id)})
    return {"message": "Product created", "data": _formatter(db)(created)}


@product_router.get("/getallproduct")
def get_all_products(category: Optional[str] = None, subcategory: Optional[str] = None,
                     gender: Optional[str] = None, db: Database = Depends(get_db)):
    query: Dict[str, Any] = {}
    if category:
        query["category"] = parse_object_id(category, "category")
    if subcategory:
        query["subcategory"] = parse_object_id(subcategory, "subcategory")
    if gender:
        query["gender"] = gender
    products = get_documents(db, "product", query)
    fmt = _formatter(db)
    return {"message": "Products fetched", "count": len(products), "data": [fmt(p) for p in products]}


@product_router.get("/getproduct/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    doc = get_or_404(db, "product", product_id, "Product")
    return {"message": "Product fetched", "data": _formatter(db)(doc)}


@product_router.put("/updateproduct/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db: Database = Depends(get_db),
                   _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "product", product_id, "Product")
    updates = payload.model_dump(exclude_none=True, exclude={"sizes", "images"})
    if "category" in updates:
        updates["category"] = _ensure_exists(db, "category", updates["category"], "category")
    if "subcategory" in updates:
        updates["subcategory"] = _ensure_exists(db, "subcategory", updates["subcategory"], "subcategory")
    merged = {**doc, **updates}
    if payload.sizes is not None:
        merged["sizes"] = build_size_entries(db, payload.sizes, doc.get("sizes") or [])
        if not merged["sizes"] and "stock" not in updates:
            merged["stock"] = None
    else:
        merged["sizes"] = [dict(e) for e in doc.get("sizes") or []]
    apply_derived_fields(merged)

    # stock moves under checkouts, so it is only written when the admin sent it
    changes = {k: merged[k] for k in updates}
    for field in ("price", "discounted_price", "discount_percentage"):
        changes[field] = merged[field]
    if payload.sizes is not None:
        changes["sizes"] = merged["sizes"]
        changes["stock"] = merged["stock"]
    else:
        if merged["sizes"]:
            changes.pop("stock", None)
        for i, entry in enumerate(merged["sizes"]):
            changes[f"sizes.{i}.discounted_price"] = entry["discounted_price"]
            changes[f"sizes.{i}.discount_percentage"] = entry["discount_percentage"]
    changes["updated_at"] = datetime.utcnow()

    update: Dict[str, Any] = {"$set": changes}
    if payload.images:
        update["$push"] = {"images": {"$each": [img.model_dump() for img in payload.images]}}
    db["product"].update_one({"_id": doc["_id"]}, update)
    doc = db["product"].find_one({"_id": doc["_id"]})
    return {"message": "Product updated", "data": _formatter(db)(doc)}


@product_router.delete("/deleteproduct/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    doc = get_or_404(db, "product", product_id, "Product")
    db["product"].delete_one({"_id": doc["_id"]})
    log.info("Product %s deleted", product_id)
    return {"message": "Product deleted", "data": serialize_doc(doc)}
