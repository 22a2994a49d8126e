import hmac
import logging
import secrets
from datetime import datetime, timedelta

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import (
    create_access_token,
    ensure_self_or_admin,
    get_current_admin,
    get_current_user,
    get_password_hash,
    get_settings,
    is_admin,
    public_user,
    verify_password,
)
from config import Settings
from database import create_document, get_db, get_documents, get_or_404, serialize_doc
from errors import AuthError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from mailer import Mailer, get_mailer
from schemas import ForgotPasswordRequest, LoginRequest, ResetPasswordRequest, SignupRequest, UserUpdate

log = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


def new_otp() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


@router.post("/signup", status_code=201)
def signup(payload: SignupRequest, db: Database = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    if db["user"].find_one({"email": payload.email}):
        raise ConflictError("User already exists")
    user_dict = payload.model_dump(exclude={"password"})
    user_dict["password_hash"] = get_password_hash(payload.password)
    # admins are promoted by another admin, never self-registered
    user_dict["usertype"] = "user"
    user_dict["is_verified"] = False
    user_id = create_document(db, "user", user_dict)
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    log.info("User %s signed up", payload.email)
    mailer.send_quietly(payload.email, "Welcome to our website", "welcome.html", {"user": user})
    return {"message": "User registered successfully", "data": serialize_doc(public_user(user))}


@router.post("/login")
def login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user["password_hash"]):
        raise AuthError("Invalid email or password")
    token = create_access_token(user, settings)
    return {"message": "Login successful", "data": serialize_doc(public_user(user)), "token": token}


@router.get("/authverify")
def auth_verify(current=Depends(get_current_user)):
    return {"status": True, "data": {"message": "User is authenticated", "data": serialize_doc(current)}}


@router.get("/getuser/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db), current=Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    user = get_or_404(db, "user", user_id, "User")
    return {"message": "User fetched successfully", "data": serialize_doc(public_user(user))}


@router.get("/getallusers")
def get_all_users(db: Database = Depends(get_db), _: dict = Depends(get_current_admin)):
    users = [serialize_doc(public_user(u)) for u in get_documents(db, "user")]
    return {"message": "Users fetched successfully", "data": users}


@router.put("/updateduser/{user_id}")
def update_user(user_id: str, payload: UserUpdate, db: Database = Depends(get_db), current=Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    user = get_or_404(db, "user", user_id, "User")
    updates = payload.model_dump(exclude_none=True)
    if "usertype" in updates and not is_admin(current):
        raise ForbiddenError("Only an admin can change the user type")
    if "email" in updates:
        other = db["user"].find_one({"email": updates["email"]})
        if other and other["_id"] != user["_id"]:
            raise ConflictError("Email already in use")
    if "password" in updates:
        updates["password_hash"] = get_password_hash(updates.pop("password"))
    updates["updated_at"] = datetime.utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": updates})
    user = db["user"].find_one({"_id": user["_id"]})
    return {"message": "User updated successfully", "data": serialize_doc(public_user(user))}


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Database = Depends(get_db),
                    settings: Settings = Depends(get_settings), mailer: Mailer = Depends(get_mailer)):
    user = db["user"].find_one({"email": payload.email})
    if not user:
        raise NotFoundError("User not found")
    otp = new_otp()
    expires = datetime.utcnow() + timedelta(minutes=settings.otp_ttl_minutes)
    db["user"].update_one({"_id": user["_id"]},
                          {"$set": {"reset_password_otp": otp, "reset_password_expires": expires}})
    # unlike the welcome mail, this one is the whole point of the request
    mailer.send(payload.email, "Your password reset code", "otp.html", {
        "user": user,
        "otp": otp,
        "minutes": settings.otp_ttl_minutes,
    })
    return {"message": "OTP sent to your email"}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email})
    if not user:
        raise NotFoundError("User not found")
    stored = user.get("reset_password_otp")
    expires = user.get("reset_password_expires")
    if not stored or not hmac.compare_digest(stored.encode(), payload.otp.encode()):
        raise ValidationError("Invalid OTP")
    if not expires or expires < datetime.utcnow():
        raise ValidationError("OTP has expired")
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": get_password_hash(payload.new_password), "updated_at": datetime.utcnow()},
            "$unset": {"reset_password_otp": "", "reset_password_expires": ""},
        },
    )
    log.info("Password reset for %s", payload.email)
    return {"message": "Password reset successfully"}
