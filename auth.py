from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr

import settings
from database import collection
from errors import AppError, ok

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)
auth_scheme = HTTPBearer(auto_error=False)

router = APIRouter(prefix="/auth", tags=["auth"])

COOKIE_MAX_AGE = 60 * 60 * 12
PUBLIC_USER_FIELDS = {"name": 1, "email": 1, "role": 1, "is_active": 1}


# Utilities
def create_access_token(data: dict, expires_minutes: int = settings.TOKEN_EXPIRE_MIN):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(user: dict) -> dict:
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email"), "role": user.get("role")}


def _token_from(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    return credentials.credentials if credentials else None


def get_current_user(request: Request,
                     credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> dict:
    token = _token_from(request, credentials)
    if not token:
        raise AppError("Unauthorized", 401)
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
        user_id: str = payload.get("sub")
        if user_id is None or not ObjectId.is_valid(user_id):
            raise AppError("Unauthorized", 401)
    except JWTError:
        raise AppError("Unauthorized", 401)

    # fetch user from DB, never with the password hash
    user = collection("user").find_one({"_id": ObjectId(user_id)}, PUBLIC_USER_FIELDS)
    if not user or not user.get("is_active", False):
        raise AppError("Unauthorized", 401)
    return public_user(user)


def require_roles(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise AppError("Access denied", 403)
        return user

    return dependency


require_admin = require_roles("super_admin", "admin")
require_super_admin = require_roles("super_admin")


def actor_fields(user: dict) -> dict:
    return {
        "actor_id": user.get("id"),
        "actor_name": user.get("name") or "Admin",
        "actor_role": user.get("role") or "admin",
    }


# Auth models
class LoginPayload(BaseModel):
    email: EmailStr
    password: str


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        max_age=COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.IS_PRODUCTION,
        samesite="lax",
    )


@router.post("/login")
def login(payload: LoginPayload, response: Response):
    doc = collection("user").find_one({"email": payload.email.lower().strip()})
    if not doc or not doc.get("is_active", False):
        raise AppError("Invalid credentials", 401)
    if not verify_password(payload.password, doc.get("password_hash", "")):
        raise AppError("Invalid credentials", 401)
    token = create_access_token({"sub": str(doc["_id"]), "role": doc.get("role", "admin")})
    _set_auth_cookie(response, token)
    return ok(public_user(doc), "Login successful")


@router.post("/logout")
def logout(response: Response, _: dict = Depends(get_current_user)):
    response.delete_cookie(settings.AUTH_COOKIE_NAME, httponly=True, secure=settings.IS_PRODUCTION, samesite="lax")
    return ok(message="Logged out successfully")


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return ok(user)
