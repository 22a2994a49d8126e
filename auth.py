import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import Settings
from database import get_db
from errors import AuthError, ForbiddenError

log = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/user/login", auto_error=False)

# never leave the server
PRIVATE_USER_FIELDS = ("password_hash", "reset_password_otp", "reset_password_expires")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user: Dict[str, Any], settings: Settings, expires_delta: timedelta | None = None):
    to_encode = {
        "id": str(user["_id"]),
        "email": user["email"],
        "usertype": user.get("usertype", "user"),
    }
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k not in PRIVATE_USER_FIELDS}


def get_current_user(token: str | None = Depends(oauth2_scheme),
                     db: Database = Depends(get_db),
                     settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    if not token:
        raise AuthError("Authorization header missing")
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id: str | None = payload.get("id")
        if user_id is None or not ObjectId.is_valid(user_id):
            raise AuthError("Invalid or expired token")
    except JWTError:
        log.info("Rejected bearer token")
        raise AuthError("Invalid or expired token")
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if user is None:
        raise AuthError("Unauthorized: user not found")
    return public_user(user)


def get_current_admin(current=Depends(get_current_user)):
    if current.get("usertype") != "admin":
        raise ForbiddenError("Access denied: admin only")
    return current


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("usertype") == "admin"


def ensure_self_or_admin(current: Dict[str, Any], owner_id: Any):
    if not is_admin(current) and str(current["_id"]) != str(owner_id):
        raise ForbiddenError("Not authorized")
