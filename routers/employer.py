from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from database import get_db
from models import Application, ForwardedCandidate, Job, Message, Role, User, utcnow
from routers.auth import require_roles
from routers.caregiver import portfolio_out
from routers.jobs import employer_dashboard
from routers.staff import message_out


log = logging.getLogger(__name__)

router = APIRouter(prefix="/employer", tags=["Employer"])

employer_only = require_roles(Role.EMPLOYER)


# -------- MESSAGES --------
@router.get("/messages")
def inbox(
    unreadOnly: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    query = db.query(Message).filter(Message.to_user_id == current_user.id)
    if unreadOnly:
        query = query.filter(Message.read_at.is_(None))
    messages = query.order_by(Message.created_at.desc(), Message.id.desc()).all()
    return {"data": [message_out(m) for m in messages]}


@router.get("/messages/{message_id}")
def read_message(message_id: int, db: Session = Depends(get_db), current_user: User = Depends(employer_only)):
    msg = (
        db.query(Message)
        .filter(Message.id == message_id, Message.to_user_id == current_user.id)
        .first()
    )
    if not msg:
        raise HTTPException(404, "Not found")
    return {"data": message_out(msg)}


@router.patch("/messages/{message_id}")
def mark_read(message_id: int, db: Session = Depends(get_db), current_user: User = Depends(employer_only)):
    result = db.execute(
        update(Message)
        .where(
            Message.id == message_id,
            Message.to_user_id == current_user.id,
            Message.read_at.is_(None),
        )
        .values(read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise HTTPException(404, "Not found or already read")
    return {"ok": True}


@router.delete("/messages/{message_id}")
def delete_message(message_id: int, db: Session = Depends(get_db), current_user: User = Depends(employer_only)):
    result = db.execute(
        delete(Message)
        .where(Message.id == message_id, Message.to_user_id == current_user.id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise HTTPException(404, "Not found")
    return {"ok": True}


# -------- CANDIDATES --------
def _candidate(application: Application, candidate_id: int, forwarded_at) -> dict:
    employee = application.employee
    return {
        "id": candidate_id,
        "applicationId": application.id,
        "forwardedAt": forwarded_at.isoformat() if forwarded_at else None,
        "employee": {
            "id": employee.id,
            "fullname": employee.fullname,
            "email": employee.email,
            "phone": employee.phone,
        },
        "portfolio": portfolio_out(application.portfolio),
    }


@router.get("/jobs/{job_id}/candidates")
def candidates(
    job_id: int,
    ids: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(employer_only),
):
    """Candidates staff forwarded for one of the employer's jobs.

    `ids` (comma separated application ids) narrows the list to one message's
    selection. A job nothing was forwarded for lists all of its applicants.
    """
    job = db.query(Job).filter(Job.id == job_id, Job.employer_id == current_user.id).first()
    if not job:
        raise HTTPException(404, "Job not found")

    wanted = [int(part) for part in (ids or "").split(",") if part.strip().isdigit()]
    if wanted:
        apps = (
            db.query(Application)
            .filter(Application.job_id == job.id, Application.id.in_(wanted))
            .order_by(Application.applied_at.desc())
            .all()
        )
        return {"data": [_candidate(a, a.id, a.applied_at) for a in apps]}

    forwarded = (
        db.query(ForwardedCandidate)
        .filter(ForwardedCandidate.job_id == job.id, ForwardedCandidate.employer_id == current_user.id)
        .order_by(ForwardedCandidate.created_at.desc(), ForwardedCandidate.id.desc())
        .all()
    )
    if forwarded:
        return {"data": [_candidate(f.application, f.id, f.created_at) for f in forwarded]}

    apps = (
        db.query(Application)
        .filter(Application.job_id == job.id)
        .order_by(Application.applied_at.desc())
        .all()
    )
    return {"data": [_candidate(a, a.id, a.applied_at) for a in apps]}


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), current_user: User = Depends(employer_only)):
    return employer_dashboard(db, current_user)
