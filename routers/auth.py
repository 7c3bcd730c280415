from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import get_db
from models import Role, User
from utils.brevo_email import BrevoTransport
from utils.otp_service import OtpResult, OtpService, is_valid_email, normalize_email
from utils.security import (
    JWT_EXP_MIN,
    TOKEN_COOKIE,
    check_password,
    create_token,
    decode_token,
    hash_password,
)


log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
bearer = HTTPBearer(auto_error=False)

SIGNUP_ROLES = {Role.EMPLOYEE.value, Role.EMPLOYER.value}


def otp_code_exposed() -> bool:
    # Returning the raw code needs both switches; any other combination keeps it server-side.
    app_env = os.getenv("APP_ENV", "production").strip().lower()
    return app_env == "development" and os.getenv("OTP_EXPOSE_CODE") == "1"


def get_mail_transport() -> BrevoTransport:
    return BrevoTransport.from_env()


def get_otp_service(
    db: Session = Depends(get_db),
    transport: BrevoTransport = Depends(get_mail_transport),
) -> OtpService:
    return OtpService(db, transport, expose_code=otp_code_exposed())


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    token = creds.credentials if creds and creds.credentials else request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise HTTPException(401, "Missing Authorization token")
    payload = decode_token(token)
    sub = (payload or {}).get("sub")
    if not sub or not str(sub).isdigit():
        raise HTTPException(401, "Invalid token")
    user = db.get(User, int(sub))
    if not user:
        raise HTTPException(401, "User not found")
    return user


def require_roles(*roles: Role):
    """Dependency factory: the current user, provided their role is one of `roles`."""
    allowed = {r.value for r in roles}

    def _guard(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(401, "Unauthorized")
        return current_user

    return _guard


def user_out(user: User) -> dict:
    return {
        "id": user.id,
        "fullname": user.fullname,
        "email": user.email,
        "phone": user.phone or "",
        "role": user.role,
        "is_active": bool(user.is_active),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _relay(result: OtpResult) -> dict:
    """Turn an OtpResult into a response body, or raise its HTTP error."""
    if not result.success:
        raise HTTPException(result.error.status_code, result.message)
    body = {"success": True, "message": result.message}
    if result.code:
        body["otp"] = result.code
    return body


def _validate_signup_fields(fullname: str, email: str, password: str, role: str) -> None:
    if not fullname.strip():
        raise HTTPException(400, "Full name is required.")
    if not is_valid_email(email):
        raise HTTPException(400, "Please enter a valid email address.")
    if len(password.strip()) < 6:
        raise HTTPException(400, "Password must be at least 6 characters.")
    if role not in SIGNUP_ROLES:
        raise HTTPException(400, "Role must be EMPLOYEE or EMPLOYER.")


class SendOtpIn(BaseModel):
    email: str
    purpose: str = "verify"


@router.post("/send-otp")
def send_otp(payload: SendOtpIn, otp: OtpService = Depends(get_otp_service)):
    return _relay(otp.issue(payload.email, payload.purpose))


class VerifyOtpIn(BaseModel):
    email: str
    otp: str


@router.post("/verify-otp")
def verify_otp(payload: VerifyOtpIn, otp: OtpService = Depends(get_otp_service)):
    return _relay(otp.verify(payload.email, payload.otp.strip()))


class SignupIn(BaseModel):
    fullname: str
    email: str
    phone: Optional[str] = None
    password: str
    role: str = Role.EMPLOYEE.value


@router.post("/signup")
def signup(
    payload: SignupIn,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    """Step one of signup: check the details and email a verification code."""
    email = normalize_email(payload.email)
    role = payload.role.strip().upper()
    _validate_signup_fields(payload.fullname, email, payload.password, role)

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(400, "Email already exists")

    return _relay(otp.issue(email, "verify"))


class CompleteSignupIn(SignupIn):
    otp: str


@router.post("/complete-signup")
def complete_signup(
    payload: CompleteSignupIn,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    email = normalize_email(payload.email)
    role = payload.role.strip().upper()
    _validate_signup_fields(payload.fullname, email, payload.password, role)

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(400, "Email already exists")

    _relay(otp.verify(email, payload.otp.strip()))

    user = User(
        fullname=payload.fullname.strip(),
        email=email,
        phone=(payload.phone or "").strip() or None,
        password_hash=hash_password(payload.password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("Created %s account %s", user.role, user.email)
    return {"success": True, "message": "Account created successfully", "user": user_out(user)}


class ForgotPasswordIn(BaseModel):
    email: str


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordIn,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    email = normalize_email(payload.email)
    if not email:
        raise HTTPException(400, "Email is required")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(404, "No user found with this email")

    _relay(otp.issue(email, "reset"))
    return {"success": True, "message": "OTP sent. Check your email."}


class ResetPasswordIn(BaseModel):
    email: str
    otp: str
    new_password: str


@router.post("/reset-password")
def reset_password(
    payload: ResetPasswordIn,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    email = normalize_email(payload.email)
    if len(payload.new_password.strip()) < 6:
        raise HTTPException(400, "Password must be at least 6 characters.")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(404, "No user found with this email")

    _relay(otp.verify(email, payload.otp.strip()))

    user.password_hash = hash_password(payload.new_password)
    db.commit()
    log.info("Password reset for %s", email)
    return {"success": True, "message": "Password updated successfully"}


class LoginIn(BaseModel):
    email: str
    password: str


@router.post("/login")
def login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    email = normalize_email(payload.email)
    user = db.query(User).filter(User.email == email).first()
    if not user or not check_password(payload.password, user.password_hash):
        raise HTTPException(401, "Invalid email or password.")

    token = create_token(user=user)
    # Browsers reach the role-gated areas with this cookie; API clients use the bearer token.
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=JWT_EXP_MIN * 60,
        httponly=True,
        samesite="lax",
        secure=os.getenv("APP_ENV", "production").strip().lower() != "development",
    )
    return {
        "success": True,
        "access_token": token,
        "token_type": "bearer",
        "user": user_out(user),
    }


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"success": True}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"success": True, "user": user_out(current_user)}
