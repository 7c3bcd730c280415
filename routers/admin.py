from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models import Application, Job, JobStatus, Role, User, utcnow
from routers.auth import require_roles, user_out
from routers.jobs import job_out
from utils.otp_service import is_valid_email, normalize_email
from utils.security import hash_password


log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

admin_only = require_roles(Role.ADMIN)

ANALYTICS_MONTHS = 6
ANALYTICS_DAYS = 30


def _month_starts(now: datetime, count: int) -> list:
    """First day of the current month and the `count - 1` months before it, oldest first."""
    year, month = now.year, now.month
    starts = []
    for _ in range(count):
        starts.append(datetime(year, month, 1))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return starts[::-1]


def admin_metrics(db: Session, now: datetime) -> dict:
    open_statuses = [JobStatus.PENDING.value, JobStatus.APPROVED.value]
    return {
        "totalUsers": db.query(func.count(User.id)).scalar(),
        "totalJobs": db.query(func.count(Job.id)).filter(Job.status.in_(open_statuses)).scalar(),
        "newApplications": (
            db.query(func.count(Application.id))
            .filter(Application.applied_at >= now - timedelta(days=ANALYTICS_DAYS))
            .scalar()
        ),
    }


def admin_analytics(db: Session, now: datetime) -> dict:
    """Signup, application and job-posting series for the admin charts.

    Bucketing happens in Python so the same code serves SQLite and Postgres.
    Every bucket is present, with zeros where nothing happened.
    """
    months = _month_starts(now, ANALYTICS_MONTHS)
    first_day = (now - timedelta(days=ANALYTICS_DAYS - 1)).date()
    days = [first_day + timedelta(days=i) for i in range(ANALYTICS_DAYS)]
    since = min(months[0], datetime.combine(first_day, datetime.min.time()))

    users = db.query(User.role, User.created_at).filter(User.created_at >= since).all()
    applied = [
        row[0]
        for row in db.query(Application.applied_at).filter(Application.applied_at >= since)
    ]
    jobs = db.query(Job.status, Job.posted_at).filter(Job.posted_at >= months[0]).all()

    def month_key(ts):
        return (ts.year, ts.month)

    caregivers_by_month = Counter(month_key(ts) for role, ts in users if role == Role.EMPLOYEE.value)
    employers_by_month = Counter(month_key(ts) for role, ts in users if role == Role.EMPLOYER.value)
    caregivers_by_day = Counter(ts.date() for role, ts in users if role == Role.EMPLOYEE.value)
    employers_by_day = Counter(ts.date() for role, ts in users if role == Role.EMPLOYER.value)
    applications_by_day = Counter(ts.date() for ts in applied)
    posted_by_month = Counter(month_key(ts) for _, ts in jobs)
    filled_by_month = Counter(month_key(ts) for status, ts in jobs if status == JobStatus.COMPLETED.value)

    role_rows = db.query(User.role, func.count(User.id)).group_by(User.role).order_by(User.role).all()

    return {
        "monthlyUsers": [
            {
                "month": m.strftime("%b"),
                "caregivers": caregivers_by_month[month_key(m)],
                "employers": employers_by_month[month_key(m)],
            }
            for m in months
        ],
        "dailyUsers": [
            {
                "date": d.isoformat(),
                "caregivers": caregivers_by_day[d],
                "employers": employers_by_day[d],
            }
            for d in days
        ],
        "dailyApplications": [
            {"date": d.isoformat(), "applications": applications_by_day[d]} for d in days
        ],
        "jobsPosted": [
            {
                "month": m.strftime("%b"),
                "posted": posted_by_month[month_key(m)],
                "filled": filled_by_month[month_key(m)],
            }
            for m in months
        ],
        "roleBreakdown": [{"role": role, "value": value} for role, value in role_rows],
    }


@router.get("/users")
def latest_users(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(50).all()
    return {"data": [user_out(u) for u in users]}


@router.get("/jobs")
def latest_jobs(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    jobs = db.query(Job).order_by(Job.posted_at.desc(), Job.id.desc()).limit(50).all()
    return {"data": [job_out(j) for j in jobs]}


@router.get("/metrics")
def metrics(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    return {"data": admin_metrics(db, utcnow())}


@router.get("/analytics")
def analytics(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    return {"data": admin_analytics(db, utcnow())}


# -------- STAFF ACCOUNTS --------
def _staff_or_404(db: Session, staff_id: int) -> User:
    user = db.get(User, staff_id)
    if not user or user.role != Role.STAFF.value:
        raise HTTPException(404, "Staff member not found")
    return user


@router.get("/staff")
def list_staff(db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    staff = (
        db.query(User)
        .filter(User.role == Role.STAFF.value)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(100)
        .all()
    )
    return {"data": [user_out(u) for u in staff]}


class StaffIn(BaseModel):
    fullname: str
    email: str
    password: str


@router.post("/staff", status_code=201)
def create_staff(payload: StaffIn, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    email = normalize_email(payload.email)
    if not payload.fullname.strip() or not is_valid_email(email) or len(payload.password.strip()) < 6:
        raise HTTPException(400, "fullname, a valid email and a 6+ character password are required")
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(409, "Email already in use")

    user = User(
        fullname=payload.fullname.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=Role.STAFF.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("Admin %s created staff account %s", current_user.id, user.email)
    return {"data": user_out(user)}


class StaffUpdate(BaseModel):
    fullname: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


@router.patch("/staff/{staff_id}")
def update_staff(
    staff_id: int,
    payload: StaffUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    user = _staff_or_404(db, staff_id)
    if payload.fullname is not None:
        if not payload.fullname.strip():
            raise HTTPException(400, "Full name is required.")
        user.fullname = payload.fullname.strip()
    if payload.email is not None:
        email = normalize_email(payload.email)
        if not is_valid_email(email):
            raise HTTPException(400, "Please enter a valid email address.")
        taken = db.query(User).filter(User.email == email, User.id != user.id).first()
        if taken:
            raise HTTPException(409, "Email already in use")
        user.email = email
    if payload.is_active is not None:
        user.is_active = payload.is_active
    db.commit()
    db.refresh(user)
    return {"data": user_out(user)}


@router.delete("/staff/{staff_id}")
def delete_staff(staff_id: int, db: Session = Depends(get_db), current_user: User = Depends(admin_only)):
    user = _staff_or_404(db, staff_id)
    db.delete(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "Staff member has review or message history; deactivate them instead")
    log.info("Admin %s deleted staff account %s", current_user.id, staff_id)
    return {"ok": True}
