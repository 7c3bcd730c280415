from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt


JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "1440"))

TOKEN_COOKIE = "access_token"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -------- PASSWORDS --------
def _bcrypt_safe(password: str) -> bytes:
    # Multi-byte safe password truncation for bcrypt (max 72 bytes)
    return password.strip().encode("utf-8")[:72].decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_bcrypt_safe(password), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_bcrypt_safe(password), password_hash.encode("utf-8"))


# -------- TOKENS --------
def create_token(*, user) -> str:
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "email": user.email,
        "name": user.fullname,
        "iat": int(_now().timestamp()),
        "exp": int((_now() + timedelta(minutes=JWT_EXP_MIN)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid token, or None when it is malformed, forged or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        return None
