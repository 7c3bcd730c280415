from __future__ import annotations

import enum
import logging
import math
import os
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import OtpVerification, utcnow
from utils.brevo_email import EmailSendError


log = logging.getLogger(__name__)

OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "60"))
OTP_RESEND_COOLDOWN_SECONDS = int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "60"))
OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "10"))
OTP_ATTEMPT_WINDOW_MINUTES = int(os.getenv("OTP_ATTEMPT_WINDOW_MINUTES", "15"))
OTP_USED_RETENTION_HOURS = int(os.getenv("OTP_USED_RETENTION_HOURS", "24"))

PURPOSES = ("verify", "reset")

_CODE_RE = re.compile(r"[0-9]{6}")


class OtpFailure(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    SEND_FAILED = "send_failed"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_OR_EXPIRED = "invalid_or_expired"

    @property
    def status_code(self) -> int:
        return _FAILURE_STATUS[self]


_FAILURE_STATUS = {
    OtpFailure.INVALID_INPUT: 400,
    OtpFailure.SERVICE_UNAVAILABLE: 500,
    OtpFailure.RATE_LIMITED: 429,
    OtpFailure.SEND_FAILED: 500,
    OtpFailure.TOO_MANY_ATTEMPTS: 429,
    OtpFailure.INVALID_OR_EXPIRED: 400,
}


@dataclass
class OtpResult:
    success: bool
    message: str
    error: Optional[OtpFailure] = None
    # Only ever set when the service was built with expose_code=True.
    code: Optional[str] = None


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _render_email(code: str, purpose: str, ttl_seconds: int) -> tuple[str, str, str]:
    if purpose == "reset":
        subject = "FIGA Care - Password Reset Code"
        heading = "Password Reset"
        intro = (
            "We received a request to reset the password for your FIGA Care account. "
            "Use the code below to choose a new password:"
        )
    else:
        subject = "FIGA Care - Email Verification Code"
        heading = "Email Verification"
        intro = (
            "Thank you for registering with FIGA Care! To complete your registration, "
            "please use the verification code below:"
        )

    if ttl_seconds % 60 == 0:
        minutes = ttl_seconds // 60
        expiry = f"{minutes} minute" + ("" if minutes == 1 else "s")
    else:
        expiry = f"{ttl_seconds} seconds"

    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px">
      <h1 style="color:#2563eb;text-align:center">FIGA Care</h1>
      <div style="background:#f8fafc;padding:30px;border-radius:10px;border:1px solid #e2e8f0">
        <h2 style="color:#1e293b;margin-top:0">{heading}</h2>
        <p style="color:#475569;line-height:1.6">{intro}</p>
        <div style="text-align:center;margin:30px 0">
          <span style="background:#2563eb;color:#fff;padding:15px 30px;border-radius:8px;font-size:24px;font-weight:700;letter-spacing:3px">{code}</span>
        </div>
        <p style="color:#64748b;font-size:14px">
          This code will expire in {expiry}. If you didn't request it, please ignore this email.
        </p>
      </div>
    </div>
    """
    text = f"Your FIGA Care code is {code}. It expires in {expiry}."
    return subject, html, text


class OtpService:
    """
    Issues and verifies email one-time codes backed by the otp_verifications
    table.

    Both entry points return an OtpResult; only unexpected storage faults
    escape as exceptions.
    """

    def __init__(
        self,
        db: Session,
        transport,
        *,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: int = OTP_TTL_SECONDS,
        resend_cooldown_seconds: int = OTP_RESEND_COOLDOWN_SECONDS,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        attempt_window_minutes: int = OTP_ATTEMPT_WINDOW_MINUTES,
        used_retention_hours: int = OTP_USED_RETENTION_HOURS,
        expose_code: bool = False,
    ):
        self.db = db
        self.transport = transport
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.resend_cooldown = timedelta(seconds=resend_cooldown_seconds)
        self.max_attempts = max_attempts
        self.attempt_window = timedelta(minutes=attempt_window_minutes)
        self.used_retention = timedelta(hours=used_retention_hours)
        self.expose_code = expose_code

    def issue(self, email: str, purpose: str = "verify") -> OtpResult:
        if purpose not in PURPOSES:
            return _fail(OtpFailure.INVALID_INPUT, "Unknown verification purpose.")
        normalized = normalize_email(email)
        if not is_valid_email(normalized):
            return _fail(OtpFailure.INVALID_INPUT, "Please enter a valid email address.")

        self.cleanup()

        if not self.transport.configured:
            log.error("OTP requested for %s but the mail transport is not configured", normalized)
            return _fail(
                OtpFailure.SERVICE_UNAVAILABLE,
                "Email service is not configured. Please contact support.",
            )

        now = self.clock()
        latest = self.db.scalar(
            select(func.max(OtpVerification.created_at)).where(OtpVerification.email == normalized)
        )
        if latest is not None and latest > now - self.resend_cooldown:
            wait = math.ceil((latest + self.resend_cooldown - now).total_seconds())
            log.info("OTP for %s rate limited (%ss left)", normalized, wait)
            return _fail(
                OtpFailure.RATE_LIMITED,
                f"Please wait {wait} seconds before requesting a new code.",
            )

        code = generate_code()
        record_id = self._replace_active_code(normalized, code, now)

        subject, html, text = _render_email(code, purpose, int(self.ttl.total_seconds()))
        try:
            message_id = self.transport.send(to_email=normalized, subject=subject, html=html, text=text)
        except EmailSendError as exc:
            log.warning("Sending %s OTP to %s failed (%s): %s", purpose, normalized, exc.reason, exc.detail)
            self._discard(record_id)
            return _fail(OtpFailure.SEND_FAILED, _send_failed_message(exc.reason))

        log.info("Sent %s OTP to %s (message %s)", purpose, normalized, message_id or "-")
        return OtpResult(
            success=True,
            message="Verification code sent to your email",
            code=code if self.expose_code else None,
        )

    def verify(self, email: str, code: str) -> OtpResult:
        normalized = normalize_email(email)
        code = "" if code is None else str(code)
        if not is_valid_email(normalized):
            return _fail(OtpFailure.INVALID_INPUT, "Please enter a valid email address.")
        if not _CODE_RE.fullmatch(code):
            return _fail(OtpFailure.INVALID_INPUT, "Verification code must be exactly 6 digits.")

        self.cleanup()

        now = self.clock()
        recent = self.db.scalar(
            select(func.count(OtpVerification.id)).where(
                OtpVerification.email == normalized,
                OtpVerification.created_at >= now - self.attempt_window,
            )
        )
        failed = self.db.scalar(
            select(func.max(OtpVerification.failed_attempts)).where(
                OtpVerification.email == normalized,
                OtpVerification.is_used.is_(False),
                OtpVerification.expires_at > now,
            )
        ) or 0
        if recent > self.max_attempts or failed >= self.max_attempts:
            log.warning(
                "Too many OTP attempts for %s (%s codes in window, %s wrong guesses)",
                normalized, recent, failed,
            )
            return _fail(
                OtpFailure.TOO_MANY_ATTEMPTS,
                "Too many verification attempts. Please request a new code.",
            )

        record_id = self.db.scalar(
            select(OtpVerification.id)
            .where(
                OtpVerification.email == normalized,
                OtpVerification.code == code,
                OtpVerification.is_used.is_(False),
                OtpVerification.expires_at > now,
            )
            .order_by(OtpVerification.created_at.desc())
            .limit(1)
        )
        if record_id is None:
            self._count_failure(normalized, now)
            log.info("OTP verification failed for %s", normalized)
            return _fail(OtpFailure.INVALID_OR_EXPIRED, "Invalid or expired verification code.")
        if not self._claim(record_id, now):
            log.info("OTP verification failed for %s", normalized)
            return _fail(OtpFailure.INVALID_OR_EXPIRED, "Invalid or expired verification code.")

        log.info("OTP verified for %s", normalized)
        return OtpResult(success=True, message="Code verified successfully")

    def cleanup(self) -> int:
        """Delete expired codes and used codes past retention. Never raises."""
        now = self.clock()
        stmt = (
            delete(OtpVerification)
            .where(
                or_(
                    OtpVerification.expires_at < now,
                    and_(
                        OtpVerification.is_used.is_(True),
                        OtpVerification.created_at < now - self.used_retention,
                    ),
                )
            )
            .execution_options(synchronize_session=False)
        )
        try:
            removed = self.db.execute(stmt).rowcount or 0
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception("OTP cleanup failed")
            return 0
        if removed:
            log.debug("OTP cleanup removed %s record(s)", removed)
        return removed

    def _replace_active_code(self, email: str, code: str, now: datetime) -> int:
        # Delete + insert commit together so at most one unused code survives.
        record = OtpVerification(
            email=email,
            code=code,
            created_at=now,
            expires_at=now + self.ttl,
            is_used=False,
        )
        try:
            self.db.execute(
                delete(OtpVerification)
                .where(OtpVerification.email == email, OtpVerification.is_used.is_(False))
                .execution_options(synchronize_session=False)
            )
            self.db.add(record)
            self.db.flush()
            record_id = record.id
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return record_id

    def _claim(self, record_id: int, now: datetime) -> bool:
        # Compare-and-set: only one caller can flip is_used for a given row.
        result = self.db.execute(
            update(OtpVerification)
            .where(
                OtpVerification.id == record_id,
                OtpVerification.is_used.is_(False),
                OtpVerification.expires_at > now,
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def _count_failure(self, email: str, now: datetime) -> None:
        # Counted in SQL so concurrent wrong guesses all land.
        self.db.execute(
            update(OtpVerification)
            .where(
                OtpVerification.email == email,
                OtpVerification.is_used.is_(False),
                OtpVerification.expires_at > now,
            )
            .values(failed_attempts=OtpVerification.failed_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def _discard(self, record_id: int) -> None:
        try:
            self.db.execute(
                delete(OtpVerification)
                .where(OtpVerification.id == record_id, OtpVerification.is_used.is_(False))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception("Could not discard undelivered OTP %s", record_id)


def _fail(error: OtpFailure, message: str) -> OtpResult:
    return OtpResult(success=False, message=message, error=error)


def _send_failed_message(reason: str) -> str:
    if reason == "auth":
        return "Failed to send verification email: email service authentication failed."
    if reason == "connection":
        return "Failed to send verification email: could not reach the email service."
    return "Failed to send verification email. Please try again."
