import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import get_db, now_utc, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def require_db(db: Optional[Database] = Depends(get_db)) -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def ensure_customer_profile(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    """Return the customer profile for a user, creating an empty one on first sign-in."""
    oid = to_object_id(user["id"])
    profile = db["customer"].find_one({"_id": oid})
    if profile is None:
        db["customer"].update_one(
            {"_id": oid},
            {"$setOnInsert": {"email": user.get("email"), "is_admin": False, "created_at": now_utc(), "updated_at": now_utc()}},
            upsert=True,
        )
        profile = db["customer"].find_one({"_id": oid})
        logger.info("Created customer profile for %s", user["id"])
    return serialize_doc(profile)


def _user_from_header(authorization: Optional[str], db: Database) -> Optional[Dict[str, Any]]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    user_id = payload.get("sub")
    oid = to_object_id(user_id or "")
    if oid is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    user = serialize_doc(user)
    user.pop("password_hash", None)
    return user


# Dependencies

def get_current_user(authorization: Optional[str] = Header(default=None), db: Database = Depends(require_db)):
    user = _user_from_header(authorization, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def get_optional_user(authorization: Optional[str] = Header(default=None), db: Optional[Database] = Depends(get_db)):
    """Current user when a bearer token is sent, None for guests."""
    if not authorization or db is None:
        return None
    return _user_from_header(authorization, db)


def get_current_customer(current_user: dict = Depends(get_current_user), db: Database = Depends(require_db)):
    return ensure_customer_profile(db, current_user)


def require_admin(customer: dict = Depends(get_current_customer)):
    if not customer.get("is_admin"):
        raise HTTPException(status_code=403, detail="You don't have permission to access the admin dashboard.")
    return customer
