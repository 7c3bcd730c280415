from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    EMPLOYER = "EMPLOYER"
    # Caregivers.
    EMPLOYEE = "EMPLOYEE"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    fullname = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=True)

    # bcrypt hash. Never store plaintext.
    password_hash = Column(String, nullable=False)

    role = Column(String, nullable=False, default=Role.EMPLOYEE.value)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class OtpVerification(Base):
    __tablename__ = "otp_verifications"

    id = Column(Integer, primary_key=True)

    # Normalized (trimmed, lower-cased). Several rows per address may exist:
    # the current unused one plus used/expired history until cleanup.
    email = Column(String, nullable=False, index=True)
    code = Column(String(6), nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    # Wrong guesses against this email while the row was the active code.
    failed_attempts = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_otp_verifications_email_created_at", "email", "created_at"),
    )


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


SHIFT_TYPES = ("Weekday", "Weekend", "Overnight", "Live-in", "One-time")
URGENCY_LEVELS = ("LOW", "MEDIUM", "HIGH")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    employer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    location = Column(String, nullable=False)
    schedule_start = Column(DateTime, nullable=False)
    schedule_end = Column(DateTime, nullable=False)
    shift_type = Column(String, nullable=False)
    gender_preference = Column(String, nullable=True)
    driving_license_required = Column(Boolean, default=False, nullable=False)
    language_level_requirement = Column(String, nullable=True)
    # Comma separated.
    job_requirements = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    job_urgency = Column(String, nullable=True)
    deadline = Column(DateTime, nullable=True)

    status = Column(String, default=JobStatus.PENDING.value, nullable=False, index=True)
    posted_at = Column(DateTime, default=utcnow, nullable=False)

    is_reviewed = Column(Boolean, default=False, nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    employer = relationship("User", foreign_keys=[employer_id])
    applications = relationship("Application", back_populates="job")


class Portfolio(Base):
    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    sex = Column(String, nullable=True)
    age = Column(Integer, nullable=True)
    # Comma separated, like comfortability and the work days/shifts.
    certifications = Column(Text, nullable=True)
    experience = Column(Text, nullable=True)
    state_where_experience_gained = Column(String, nullable=True)
    suitable_work_days = Column(String, nullable=True)
    suitable_work_shift = Column(String, nullable=True)
    comfortability = Column(Text, nullable=True)
    university_college = Column(String, nullable=True)
    study_field = Column(String, nullable=True)
    degree = Column(String, nullable=True)
    english_skill = Column(String, nullable=True)
    us_living_years = Column(Integer, nullable=True)
    driving_details = Column(String, nullable=True)
    authorized_to_work = Column(Boolean, nullable=True)
    currently_employed = Column(Boolean, nullable=True)
    reason_left_previous_job = Column(Text, nullable=True)
    job_type_preference = Column(String, nullable=True)
    profile_image = Column(String, nullable=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=True)
    cover_letter = Column(Text, nullable=True)
    status = Column(String, default=JobStatus.PENDING.value, nullable=False)
    applied_at = Column(DateTime, default=utcnow, nullable=False)

    job = relationship("Job", back_populates="applications")
    employee = relationship("User", foreign_keys=[employee_id])
    portfolio = relationship("Portfolio")

    __table_args__ = (
        UniqueConstraint("job_id", "employee_id", name="uq_applications_job_employee"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    subject = Column(String, nullable=True)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read_at = Column(DateTime, nullable=True)

    to_user = relationship("User", foreign_keys=[to_user_id])
    from_user = relationship("User", foreign_keys=[from_user_id])
    job = relationship("Job")


class ForwardedCandidate(Base):
    __tablename__ = "forwarded_candidates"

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    employer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    application = relationship("Application")

    __table_args__ = (
        UniqueConstraint("job_id", "application_id", name="uq_forwarded_job_application"),
    )
