import logging
from datetime import datetime

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import get_current_admin, get_current_user
from database import create_document, get_db, get_documents, get_or_404, parse_object_id, serialize_doc
from errors import NotFoundError
from mailer import Mailer, get_mailer
from schemas import BannerIn, MessageIn, MessageUpdate, ReplyRequest, WishRequest

log = logging.getLogger(__name__)

banner_router = APIRouter(prefix="/banner", tags=["banner"])
wishlist_router = APIRouter(prefix="/wishlist", tags=["wishlist"])
message_router = APIRouter(prefix="/message", tags=["message"])


# Banners

@banner_router.post("/addbanner", status_code=201)
def add_banner(payload: BannerIn, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    banner_id = create_document(db, "banner", payload)
    banner = db["banner"].find_one({"_id": ObjectId(banner_id)})
    return {"message": "Banner uploaded successfully", "data": serialize_doc(banner)}


@banner_router.put("/updatebanner/{banner_id}")
def update_banner(banner_id: str, payload: BannerIn, db: Database = Depends(get_db),
                  _: dict = Depends(get_current_admin)):
    banner = get_or_404(db, "banner", banner_id, "Banner")
    db["banner"].update_one({"_id": banner["_id"]},
                            {"$set": {**payload.model_dump(), "updated_at": datetime.utcnow()}})
    banner = db["banner"].find_one({"_id": banner["_id"]})
    return {"message": "Banner updated successfully", "data": serialize_doc(banner)}


@banner_router.get("/getbanners")
def get_banners(db: Database = Depends(get_db)):
    banners = get_documents(db, "banner")
    if not banners:
        raise NotFoundError("No banners found")
    return serialize_doc(banners)


@banner_router.delete("/deletebanner/{banner_id}")
def delete_banner(banner_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    banner = get_or_404(db, "banner", banner_id, "Banner")
    db["banner"].delete_one({"_id": banner["_id"]})
    return {"message": "Banner deleted successfully"}


# Wishlist

def _wishlist_products(db: Database, user_id):
    wishlist = db["wishlist"].find_one({"user": user_id})
    ids = wishlist.get("products", []) if wishlist else []
    found = {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}})}
    # keep the order the products were added in, skipping deleted ones
    return [serialize_doc(found[i]) for i in ids if i in found]


@wishlist_router.post("/wish")
def add_to_wishlist(payload: WishRequest, db: Database = Depends(get_db), current=Depends(get_current_user)):
    product = get_or_404(db, "product", payload.product_id, "Product")
    now = datetime.utcnow()
    db["wishlist"].update_one(
        {"user": current["_id"]},
        {"$addToSet": {"products": product["_id"]}, "$set": {"updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return {"success": True, "wishlist": _wishlist_products(db, current["_id"])}


@wishlist_router.delete("/deletewish/{product_id}")
def remove_from_wishlist(product_id: str, db: Database = Depends(get_db), current=Depends(get_current_user)):
    oid = parse_object_id(product_id, "product")
    db["wishlist"].update_one({"user": current["_id"]}, {"$pull": {"products": oid}})
    return {"success": True, "wishlist": _wishlist_products(db, current["_id"])}


@wishlist_router.get("/getwish")
def get_wishlist(db: Database = Depends(get_db), current=Depends(get_current_user)):
    return {"success": True, "wishlist": _wishlist_products(db, current["_id"])}


# Messages

@message_router.post("/sendmessage", status_code=201)
def send_message(payload: MessageIn, db: Database = Depends(get_db), current=Depends(get_current_user)):
    data = payload.model_dump()
    data["user"] = current["_id"]
    message_id = create_document(db, "message", data)
    return serialize_doc(db["message"].find_one({"_id": ObjectId(message_id)}))


@message_router.get("/getmessage")
def get_messages(db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    return serialize_doc(get_documents(db, "message"))


@message_router.get("/getsinglemessage/{message_id}")
def get_message(message_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    return serialize_doc(get_or_404(db, "message", message_id, "Message"))


@message_router.put("/updatemessage/{message_id}")
def update_message(message_id: str, payload: MessageUpdate, db: Database = Depends(get_db),
                   _: dict = Depends(get_current_admin)):
    message = get_or_404(db, "message", message_id, "Message")
    updates = payload.model_dump(exclude_none=True)
    updates["updated_at"] = datetime.utcnow()
    db["message"].update_one({"_id": message["_id"]}, {"$set": updates})
    return serialize_doc(db["message"].find_one({"_id": message["_id"]}))


@message_router.delete("/deletmessage/{message_id}")
def delete_message(message_id: str, db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    message = get_or_404(db, "message", message_id, "Message")
    db["message"].delete_one({"_id": message["_id"]})
    return {"message": "Message deleted successfully"}


@message_router.post("/reply/{message_id}")
def reply_to_message(message_id: str, payload: ReplyRequest, db: Database = Depends(get_db),
                     mailer: Mailer = Depends(get_mailer), _: dict = Depends(get_current_admin)):
    message = get_or_404(db, "message", message_id, "Message")
    mailer.send(message["email"], payload.subject, "message_reply.html", {
        "name": message["name"],
        "original": message["message"],
        "body": payload.body,
    })
    db["message"].update_one({"_id": message["_id"]}, {"$set": {"replied_at": datetime.utcnow()}})
    log.info("Replied to message %s", message_id)
    return {"message": "Email Sent Successfully"}
