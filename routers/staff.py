from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from models import (
    Application,
    ForwardedCandidate,
    Job,
    JobStatus,
    Message,
    Portfolio,
    Role,
    User,
    utcnow,
)
from routers.applications import application_out
from routers.auth import require_roles, user_out
from routers.caregiver import portfolio_out
from routers.jobs import ShiftType, job_out, naive_utc
from utils.otp_service import normalize_email
from utils.security import hash_password


log = logging.getLogger(__name__)

router = APIRouter(prefix="/staff", tags=["Staff"])

staff_only = require_roles(Role.STAFF, Role.ADMIN)

REVIEW_STATUSES = {JobStatus.APPROVED.value, JobStatus.REJECTED.value}


def message_out(msg: Message) -> dict:
    return {
        "id": msg.id,
        "to_user_id": msg.to_user_id,
        "from_user_id": msg.from_user_id,
        "job_id": msg.job_id,
        "subject": msg.subject,
        "body": msg.body,
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
        "read_at": msg.read_at.isoformat() if msg.read_at else None,
        "from_user": (
            {"id": msg.from_user.id, "fullname": msg.from_user.fullname, "email": msg.from_user.email}
            if msg.from_user else None
        ),
        "job": {"id": msg.job.id, "title": msg.job.title} if msg.job else None,
    }


def staff_dashboard(db: Session) -> dict:
    """Sizes of the three staff work queues."""
    return {
        "pendingJobs": db.query(func.count(Job.id)).filter(Job.status == JobStatus.PENDING.value).scalar(),
        "unverifiedPortfolios": (
            db.query(func.count(Portfolio.id)).filter(Portfolio.is_verified.is_(False)).scalar()
        ),
        "pendingApplications": (
            db.query(func.count(Application.id))
            .filter(Application.status == JobStatus.PENDING.value)
            .scalar()
        ),
    }


def _job_or_404(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return job


# -------- JOBS --------
@router.get("/jobs")
def review_queue(db: Session = Depends(get_db), current_user: User = Depends(staff_only)):
    jobs = (
        db.query(Job)
        .filter(Job.status.in_([JobStatus.PENDING.value, JobStatus.REJECTED.value]))
        .order_by(Job.posted_at.desc())
        .all()
    )
    return {"jobs": [job_out(j) for j in jobs]}


class StaffJobIn(BaseModel):
    employerEmail: str
    title: str = Field(min_length=5)
    location: str = Field(min_length=3)
    schedule_start: datetime
    schedule_end: datetime
    shift_type: ShiftType
    description: str = Field(min_length=20)


@router.post("/jobs", status_code=201)
def post_for_employer(
    payload: StaffJobIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    """Staff-posted jobs skip the review queue."""
    employer = db.query(User).filter(User.email == normalize_email(payload.employerEmail)).first()
    if not employer or employer.role != Role.EMPLOYER.value:
        raise HTTPException(404, "Employer not found")

    start, end = naive_utc(payload.schedule_start), naive_utc(payload.schedule_end)
    if end < start:
        raise HTTPException(400, "schedule_end must not be before schedule_start")

    now = utcnow()
    job = Job(
        employer_id=employer.id,
        title=payload.title,
        location=payload.location,
        schedule_start=start,
        schedule_end=end,
        shift_type=payload.shift_type,
        description=payload.description,
        status=JobStatus.APPROVED.value,
        posted_at=now,
        is_reviewed=True,
        reviewed_by=current_user.id,
        reviewed_at=now,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    log.info("Staff %s posted job %s for employer %s", current_user.id, job.id, employer.id)
    return {"job": job_out(job)}


@router.get("/jobs/{job_id}")
def get_job(job_id: int, db: Session = Depends(get_db), current_user: User = Depends(staff_only)):
    return {"job": job_out(_job_or_404(db, job_id))}


class ReviewIn(BaseModel):
    status: str


@router.patch("/jobs/{job_id}/status")
def review_job(
    job_id: int,
    payload: ReviewIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    if payload.status not in REVIEW_STATUSES:
        raise HTTPException(400, "Invalid status")
    job = _job_or_404(db, job_id)
    job.status = payload.status
    job.is_reviewed = True
    job.reviewed_by = current_user.id
    job.reviewed_at = utcnow()
    db.commit()
    db.refresh(job)
    log.info("Staff %s marked job %s %s", current_user.id, job.id, job.status)
    return job_out(job)


# -------- APPLICANTS --------
@router.get("/applicants")
def list_applicants(
    q: str = "",
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    query = (
        db.query(Application)
        .join(Job, Application.job_id == Job.id)
        .join(User, Application.employee_id == User.id)
    )
    needle = q.strip()
    if needle:
        query = query.filter(or_(Job.title.ilike(f"%{needle}%"), User.fullname.ilike(f"%{needle}%")))
    apps = query.order_by(Application.applied_at.desc()).all()

    applicants = []
    for a in apps:
        p = a.portfolio
        applicants.append({
            "applicationId": a.id,
            "jobId": a.job_id,
            "jobTitle": a.job.title,
            "jobLocation": a.job.location,
            "jobStatus": a.job.status,
            "jobUrgency": a.job.job_urgency,
            "appliedAt": a.applied_at.isoformat(),
            "employeeId": a.employee_id,
            "employeeName": a.employee.fullname,
            "employeeEmail": a.employee.email,
            "status": a.status,
            "portfolio": {
                "verified": bool(p and p.is_verified),
                "english": p.english_skill if p else None,
                "sex": p.sex if p else None,
                "workShift": p.suitable_work_shift if p else None,
                "workDays": p.suitable_work_days if p else None,
            },
        })
    return {"applicants": applicants}


@router.patch("/applications/{application_id}/status")
def review_application(
    application_id: int,
    payload: ReviewIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    if payload.status not in REVIEW_STATUSES:
        raise HTTPException(400, "Invalid status")
    application = db.get(Application, application_id)
    if not application:
        raise HTTPException(404, "Application not found")
    application.status = payload.status
    db.commit()
    db.refresh(application)
    log.info("Staff %s marked application %s %s", current_user.id, application.id, application.status)
    return application_out(application)


class ForwardIn(BaseModel):
    applicationIds: List[int] = []


@router.post("/applicants/{job_id}/send")
def forward_candidates(
    job_id: int,
    payload: Optional[ForwardIn] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    """Forward a job's applicants (all of them when none are picked) to its employer."""
    job = _job_or_404(db, job_id)
    ids = payload.applicationIds if payload else []

    query = db.query(Application).filter(Application.job_id == job.id)
    if ids:
        query = query.filter(Application.id.in_(ids))
    apps = query.order_by(Application.id).all()
    if not apps:
        raise HTTPException(400, "No matching applications")

    already = {
        row.application_id
        for row in db.query(ForwardedCandidate.application_id).filter(ForwardedCandidate.job_id == job.id)
    }
    for a in apps:
        if a.id not in already:
            db.add(ForwardedCandidate(job_id=job.id, employer_id=job.employer_id, application_id=a.id))

    summary = "\n".join(f"- {a.employee.fullname} <{a.employee.email}> (app #{a.id})" for a in apps)
    db.add(Message(
        to_user_id=job.employer_id,
        from_user_id=current_user.id,
        job_id=job.id,
        subject=f"Selected candidates for {job.title}",
        body=(
            f'The following candidates have been selected for your job "{job.title}":\n\n'
            f"{summary}\n\nYou can review them in the dashboard."
        ),
    ))
    db.commit()
    log.info("Staff %s forwarded %s candidate(s) for job %s", current_user.id, len(apps), job.id)
    return {"ok": True, "sentTo": job.employer.email, "count": len(apps)}


# -------- PORTFOLIOS --------
def _with_owner(portfolio: Portfolio) -> dict:
    body = portfolio_out(portfolio)
    owner = portfolio.user
    body["user"] = {"fullname": owner.fullname, "email": owner.email, "phone": owner.phone}
    return body


@router.get("/portfolios")
def list_portfolios(db: Session = Depends(get_db), current_user: User = Depends(staff_only)):
    portfolios = db.query(Portfolio).order_by(Portfolio.created_at.desc()).all()
    return {"portfolios": [_with_owner(p) for p in portfolios]}


class VerifyIn(BaseModel):
    is_verified: bool


@router.patch("/portfolios/{portfolio_id}/verify")
def verify_portfolio(
    portfolio_id: int,
    payload: VerifyIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    portfolio = db.get(Portfolio, portfolio_id)
    if not portfolio:
        raise HTTPException(404, "Portfolio not found")
    portfolio.is_verified = payload.is_verified
    portfolio.verified_by = current_user.id
    portfolio.verified_at = utcnow()
    db.commit()
    db.refresh(portfolio)
    log.info("Staff %s set portfolio %s verified=%s", current_user.id, portfolio.id, portfolio.is_verified)
    return portfolio_out(portfolio)


@router.get("/portfolios/by-user/{user_id}")
def portfolio_for_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(staff_only)):
    portfolio = db.query(Portfolio).filter(Portfolio.user_id == user_id).first()
    if not portfolio:
        raise HTTPException(404, "Portfolio not found")
    return {"portfolio": _with_owner(portfolio)}


# -------- ACCOUNTS & MESSAGES --------
class EmployerIn(BaseModel):
    fullname: str
    email: str
    password: str
    phone: Optional[str] = None


@router.post("/employers", status_code=201)
def create_employer(
    payload: EmployerIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    email = normalize_email(payload.email)
    if not payload.fullname.strip() or not email or not payload.password.strip():
        raise HTTPException(400, "Missing fields")
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(409, "Email already in use")

    user = User(
        fullname=payload.fullname.strip(),
        email=email,
        phone=(payload.phone or "").strip() or None,
        password_hash=hash_password(payload.password),
        role=Role.EMPLOYER.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("Staff %s created employer %s", current_user.id, user.email)
    return {"user": user_out(user)}


class MessageIn(BaseModel):
    toEmail: str
    subject: Optional[str] = None
    body: str = Field(min_length=1)
    jobId: Optional[int] = None


@router.post("/messages", status_code=201)
def send_message(
    payload: MessageIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    recipient = db.query(User).filter(User.email == normalize_email(payload.toEmail)).first()
    if not recipient:
        raise HTTPException(404, "Recipient not found")
    if payload.jobId is not None:
        _job_or_404(db, payload.jobId)

    msg = Message(
        to_user_id=recipient.id,
        from_user_id=current_user.id,
        job_id=payload.jobId,
        subject=payload.subject or None,
        body=payload.body,
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return {"message": message_out(msg)}


@router.get("/employees")
def search_people(
    q: str = "",
    status: Literal["all", "active", "inactive"] = "all",
    role: str = Role.EMPLOYEE.value,
    page: int = Query(1, ge=1),
    pageSize: int = Query(10, ge=1, le=50),
    cert: str = "",
    day: str = "any",
    sex: str = "any",
    shift: str = "any",
    minAge: Optional[int] = None,
    maxAge: Optional[int] = None,
    verified: Literal["all", "verified", "unverified"] = "all",
    db: Session = Depends(get_db),
    current_user: User = Depends(staff_only),
):
    """Caregiver (or other role) directory with portfolio-based filters."""
    query = (
        db.query(User, Portfolio)
        .outerjoin(Portfolio, Portfolio.user_id == User.id)
        .filter(User.role == role.upper())
    )
    needle = q.strip()
    if needle:
        like = f"%{needle}%"
        query = query.filter(or_(User.fullname.ilike(like), User.email.ilike(like), User.phone.ilike(like)))
    if status != "all":
        query = query.filter(User.is_active.is_(status == "active"))

    if cert.strip():
        query = query.filter(Portfolio.certifications.ilike(f"%{cert.strip()}%"))
    if day.strip().lower() != "any":
        query = query.filter(Portfolio.suitable_work_days.ilike(f"%{day.strip()}%"))
    if shift.strip().lower() != "any":
        query = query.filter(Portfolio.suitable_work_shift.ilike(f"%{shift.strip()}%"))
    if sex.strip().lower() != "any":
        query = query.filter(func.lower(Portfolio.sex) == sex.strip().lower())
    if minAge is not None:
        query = query.filter(Portfolio.age >= minAge)
    if maxAge is not None:
        query = query.filter(Portfolio.age <= maxAge)

    if verified == "verified":
        query = query.filter(Portfolio.is_verified.is_(True))
    elif verified == "unverified":
        # No portfolio at all counts as unverified.
        query = query.filter(or_(Portfolio.id.is_(None), Portfolio.is_verified.is_(False)))

    total = query.count()
    rows = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * pageSize)
        .limit(pageSize)
        .all()
    )
    data = []
    for u, p in rows:
        data.append({
            "id": u.id,
            "fullname": u.fullname,
            "email": u.email,
            "phone": u.phone,
            "role": u.role,
            "is_active": bool(u.is_active),
            "created_at": u.created_at.isoformat(),
            "certifications": p.certifications if p else None,
            "working_days": p.suitable_work_days if p else None,
            "working_shifts": p.suitable_work_shift if p else None,
            "age": p.age if p else None,
            "sex": p.sex if p else None,
            "verified": p.is_verified if p else None,
        })
    return {"data": data, "total": total, "page": page, "pageSize": pageSize}
