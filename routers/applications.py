from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from models import Application, Job, JobStatus, Portfolio, Role, User, utcnow
from routers.auth import require_roles


log = logging.getLogger(__name__)

router = APIRouter(tags=["Applications"])


def application_out(app: Application) -> dict:
    return {
        "id": app.id,
        "job_id": app.job_id,
        "employee_id": app.employee_id,
        "portfolio_id": app.portfolio_id,
        "cover_letter": app.cover_letter,
        "status": app.status,
        "applied_at": app.applied_at.isoformat() if app.applied_at else None,
    }


class ApplyIn(BaseModel):
    jobId: int
    coverLetter: Optional[str] = None


@router.post("/applications")
def apply(
    payload: ApplyIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.EMPLOYEE)),
):
    job = db.get(Job, payload.jobId)
    if not job:
        raise HTTPException(404, "Job not found")
    if job.status != JobStatus.APPROVED.value:
        raise HTTPException(400, "This job is not open for applications.")

    existing = (
        db.query(Application)
        .filter(Application.job_id == job.id, Application.employee_id == current_user.id)
        .first()
    )
    if existing:
        raise HTTPException(409, "Already applied")

    portfolio = db.query(Portfolio).filter(Portfolio.user_id == current_user.id).first()
    if not portfolio:
        raise HTTPException(400, "Please complete your portfolio before applying.")

    cover_letter = (payload.coverLetter or "").strip() or None
    application = Application(
        job_id=job.id,
        employee_id=current_user.id,
        portfolio_id=portfolio.id,
        cover_letter=cover_letter,
        status=JobStatus.PENDING.value,
        applied_at=utcnow(),
    )
    db.add(application)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent apply for the same job.
        db.rollback()
        raise HTTPException(409, "Already applied")
    db.refresh(application)
    log.info("Caregiver %s applied to job %s", current_user.id, job.id)
    return {"ok": True, "application": application_out(application)}
