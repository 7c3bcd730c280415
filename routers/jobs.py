from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models import Application, Job, JobStatus, Message, Role, User, utcnow
from routers.auth import require_roles


log = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])

ShiftType = Literal["Weekday", "Weekend", "Overnight", "Live-in", "One-time"]
Urgency = Literal["LOW", "MEDIUM", "HIGH"]

SHIFT_LABELS = {
    "Weekday": "Day shift",
    "Weekend": "Weekend",
    "Overnight": "Night shift",
    "Live-in": "Live-in",
    "One-time": "One-time",
}

# Employers may close their own posting; approval belongs to staff.
EMPLOYER_STATUSES = {JobStatus.COMPLETED.value, JobStatus.CANCELLED.value}

# Fields whose change sends a reviewed job back to the staff queue.
CONTENT_FIELDS = (
    "title",
    "location",
    "schedule_start",
    "schedule_end",
    "shift_type",
    "gender_preference",
    "driving_license_required",
    "language_level_requirement",
    "job_requirements",
    "description",
    "job_urgency",
    "deadline",
)

REQUIRED_FIELDS = (
    "title",
    "location",
    "schedule_start",
    "schedule_end",
    "shift_type",
    "driving_license_required",
    "description",
)

employer_only = require_roles(Role.EMPLOYER)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Columns store naive UTC; offset-aware input is converted first."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def split_list(raw: Optional[str]) -> list:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def posted_label(posted_at: datetime, now: datetime) -> str:
    seconds = max(0, int((now - posted_at).total_seconds()))
    for size, unit in ((86400 * 30, "month"), (86400, "day"), (3600, "hour"), (60, "minute")):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'' if count == 1 else 's'} ago"
    return "just now"


def job_out(job: Job) -> dict:
    employer = job.employer
    return {
        "id": job.id,
        "employer_id": job.employer_id,
        "title": job.title,
        "location": job.location,
        "schedule_start": _iso(job.schedule_start),
        "schedule_end": _iso(job.schedule_end),
        "shift_type": job.shift_type,
        "gender_preference": job.gender_preference,
        "driving_license_required": bool(job.driving_license_required),
        "language_level_requirement": job.language_level_requirement,
        "job_requirements": job.job_requirements,
        "description": job.description,
        "job_urgency": job.job_urgency,
        "deadline": _iso(job.deadline),
        "status": job.status,
        "posted_at": _iso(job.posted_at),
        "is_reviewed": bool(job.is_reviewed),
        "reviewed_by": job.reviewed_by,
        "reviewed_at": _iso(job.reviewed_at),
        "employer": (
            {"fullname": employer.fullname, "email": employer.email, "phone": employer.phone}
            if employer else None
        ),
    }


def job_card(job: Job, applicants: int, now: datetime) -> dict:
    """The public Find Jobs view of a posting."""
    days = max(1, math.ceil((job.schedule_end - job.schedule_start).total_seconds() / 86400))
    shift_types = [SHIFT_LABELS.get(job.shift_type, job.shift_type)] if job.shift_type else []
    if not job.deadline:
        shift_types.append("Ongoing")
    employer = job.employer
    return {
        "id": job.id,
        "title": job.title,
        "company": employer.fullname if employer else "-",
        "location": job.location,
        "isOpen": job.status not in (JobStatus.CANCELLED.value, JobStatus.COMPLETED.value),
        "startDate": _iso(job.schedule_start),
        "endDate": _iso(job.schedule_end),
        "shiftTypes": shift_types,
        "duration": f"{'Full-time' if days >= 5 else 'Part-time'}, {days} {'day' if days == 1 else 'days'}",
        "genderPreference": job.gender_preference or "No preference",
        "drivingRequired": bool(job.driving_license_required),
        "englishRequired": bool(job.language_level_requirement),
        "communicationLevel": job.language_level_requirement or "-",
        "requirements": split_list(job.job_requirements),
        "description": job.description,
        "contactInfo": employer.email if employer else "-",
        "posted": posted_label(job.posted_at, now),
        "urgent": job.job_urgency == "HIGH",
        "applicants": applicants,
    }


def applicant_counts(db: Session, job_ids: list) -> dict:
    if not job_ids:
        return {}
    rows = (
        db.query(Application.job_id, func.count(Application.id))
        .filter(Application.job_id.in_(job_ids))
        .group_by(Application.job_id)
        .all()
    )
    return dict(rows)


def employer_dashboard(db: Session, employer: User) -> dict:
    """Posting counts by status plus unread staff messages for one employer."""
    by_status = dict(
        db.query(Job.status, func.count(Job.id))
        .filter(Job.employer_id == employer.id)
        .group_by(Job.status)
        .all()
    )
    recent = (
        db.query(Job)
        .filter(Job.employer_id == employer.id)
        .order_by(Job.posted_at.desc())
        .limit(5)
        .all()
    )
    unread = (
        db.query(func.count(Message.id))
        .filter(Message.to_user_id == employer.id, Message.read_at.is_(None))
        .scalar()
    )
    return {
        "jobs": {s.value: by_status.get(s.value, 0) for s in JobStatus},
        "recentJobs": [job_out(j) for j in recent],
        "unreadMessages": unread or 0,
    }


@router.get("/findjob")
def find_jobs(
    status: str = JobStatus.APPROVED.value,
    take: Optional[int] = Query(None, ge=0),
    skip: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(Job).filter(Job.status == status.upper()).order_by(Job.posted_at.desc())
    if skip:
        query = query.offset(skip)
    if take is not None:
        query = query.limit(take)
    jobs = query.all()
    counts = applicant_counts(db, [j.id for j in jobs])
    now = utcnow()
    return {"data": [job_card(j, counts.get(j.id, 0), now) for j in jobs]}


class JobIn(BaseModel):
    title: str = Field(min_length=5)
    location: str = Field(min_length=3)
    schedule_start: datetime
    schedule_end: datetime
    shift_type: ShiftType
    gender_preference: Optional[str] = None
    driving_license_required: bool = False
    language_level_requirement: Optional[str] = None
    job_requirements: Optional[str] = None
    description: str = Field(min_length=20)
    job_urgency: Optional[Urgency] = None
    deadline: Optional[datetime] = None


class JobUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=5)
    location: Optional[str] = Field(None, min_length=3)
    schedule_start: Optional[datetime] = None
    schedule_end: Optional[datetime] = None
    shift_type: Optional[ShiftType] = None
    gender_preference: Optional[str] = None
    driving_license_required: Optional[bool] = None
    language_level_requirement: Optional[str] = None
    job_requirements: Optional[str] = None
    description: Optional[str] = Field(None, min_length=20)
    job_urgency: Optional[Urgency] = None
    deadline: Optional[datetime] = None
    status: Optional[str] = None


def _check_schedule(start: datetime, end: datetime) -> None:
    if end < start:
        raise HTTPException(400, "schedule_end must not be before schedule_start")


def _own_job(db: Session, job_id: int, employer: User) -> Job:
    job = db.query(Job).filter(Job.id == job_id, Job.employer_id == employer.id).first()
    if not job:
        raise HTTPException(404, "Job not found")
    return job


@router.get("/job")
def list_own_jobs(
    status: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    query = db.query(Job).filter(Job.employer_id == current_user.id)
    if status:
        query = query.filter(Job.status == status.upper())
    query = query.order_by(Job.posted_at.desc())
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    total = db.query(func.count(Job.id)).filter(Job.employer_id == current_user.id).scalar()
    return {
        "data": [job_out(j) for j in query.all()],
        "meta": {"total": total, "limit": limit, "offset": offset},
    }


@router.post("/job", status_code=201)
def create_job(
    payload: JobIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    data = payload.model_dump()
    for key in ("schedule_start", "schedule_end", "deadline"):
        data[key] = naive_utc(data[key])
    _check_schedule(data["schedule_start"], data["schedule_end"])

    job = Job(**data, employer_id=current_user.id, status=JobStatus.PENDING.value, posted_at=utcnow())
    db.add(job)
    db.commit()
    db.refresh(job)
    log.info("Employer %s posted job %s for review", current_user.id, job.id)
    return job_out(job)


@router.get("/job/{job_id}")
def get_own_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    return job_out(_own_job(db, job_id, current_user))


@router.patch("/job/{job_id}")
@router.put("/job/{job_id}")
def update_own_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    job = _own_job(db, job_id, current_user)
    changes = payload.model_dump(exclude_unset=True)

    status = changes.pop("status", None)
    if status is not None and status not in EMPLOYER_STATUSES:
        raise HTTPException(400, "Invalid status")

    for key in ("schedule_start", "schedule_end", "deadline"):
        if key in changes:
            changes[key] = naive_utc(changes[key])
    for key in REQUIRED_FIELDS:
        if key in changes and changes[key] is None:
            raise HTTPException(400, f"{key} cannot be empty")
    _check_schedule(changes.get("schedule_start", job.schedule_start), changes.get("schedule_end", job.schedule_end))

    edited = [k for k in CONTENT_FIELDS if k in changes and changes[k] != getattr(job, k)]
    for key in edited:
        setattr(job, key, changes[key])

    if status is not None:
        job.status = status
    elif edited and job.status in (JobStatus.APPROVED.value, JobStatus.REJECTED.value):
        # Staff approved the old wording, not this one.
        job.status = JobStatus.PENDING.value
        job.is_reviewed = False
        job.reviewed_by = None
        job.reviewed_at = None

    db.commit()
    db.refresh(job)
    return job_out(job)


@router.delete("/job/{job_id}")
def cancel_own_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    job = _own_job(db, job_id, current_user)
    job.status = JobStatus.CANCELLED.value
    db.commit()
    db.refresh(job)
    log.info("Employer %s cancelled job %s", current_user.id, job.id)
    return job_out(job)
