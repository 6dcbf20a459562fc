import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import ADMINS, get_db, to_object_id

logger = logging.getLogger(__name__)

# Use pbkdf2_sha256 to avoid bcrypt backend issues in some environments
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# auto_error=False so a missing header gets the same 401 as a bad token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login", auto_error=False)

CREDENTIALS_ERROR = "Access denied. Invalid token."


def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=CREDENTIALS_ERROR,
        headers={"WWW-Authenticate": "Bearer"},
    )


def hash_password(password):
    return pwd_context.hash(password)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def authenticate_admin(db: Database, username: str, password: str):
    admin = db[ADMINS].find_one({"username": username})
    if not admin or not admin.get("isActive", False):
        return None
    if not verify_password(password, admin["password"]):
        return None
    return admin


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt


def public_admin(admin: dict) -> dict:
    return {
        "id": str(admin["_id"]),
        "username": admin["username"],
        "email": admin["email"],
        "role": admin.get("role", "admin"),
    }


async def get_current_admin(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Database = Depends(get_db),
):
    """Resolve the bearer token to an active admin or fail with 401.

    The admin document is re-read on every request so deactivating an
    account revokes its outstanding tokens.
    """
    if not token:
        raise credentials_exception()
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected admin token: %s", exc)
        raise credentials_exception()

    admin_id = to_object_id(payload.get("sub"))
    if admin_id is None:
        raise credentials_exception()

    admin = db[ADMINS].find_one({"_id": admin_id}, {"password": 0})
    if not admin or not admin.get("isActive", False):
        raise credentials_exception()

    request.state.admin = admin
    return admin
