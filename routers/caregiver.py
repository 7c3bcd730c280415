from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import get_db
from models import Application, JobStatus, Portfolio, Role, User
from routers.auth import require_roles
from routers.jobs import split_list


log = logging.getLogger(__name__)

router = APIRouter(prefix="/caregiver", tags=["Caregiver"])

caregiver_only = require_roles(Role.EMPLOYEE)

PORTFOLIO_FIELDS = (
    "sex",
    "age",
    "certifications",
    "experience",
    "state_where_experience_gained",
    "suitable_work_days",
    "suitable_work_shift",
    "comfortability",
    "university_college",
    "study_field",
    "degree",
    "english_skill",
    "us_living_years",
    "driving_details",
    "authorized_to_work",
    "currently_employed",
    "reason_left_previous_job",
    "job_type_preference",
    "profile_image",
)

STATUS_MESSAGES = {
    "accepted": "Congratulations! Your application was approved. Our staff will contact you with next steps.",
    "rejected": "Thank you for your application. Unfortunately it was not selected.",
    "pending": "Your application is under review. We will notify you once a decision has been made.",
}


def application_status(status: str) -> str:
    if status == JobStatus.APPROVED.value:
        return "accepted"
    if status == JobStatus.REJECTED.value:
        return "rejected"
    return "pending"


def portfolio_out(portfolio: Optional[Portfolio]) -> Optional[dict]:
    if portfolio is None:
        return None
    body = {field: getattr(portfolio, field) for field in PORTFOLIO_FIELDS}
    body.update(
        id=portfolio.id,
        user_id=portfolio.user_id,
        is_verified=bool(portfolio.is_verified),
        verified_by=portfolio.verified_by,
        verified_at=portfolio.verified_at.isoformat() if portfolio.verified_at else None,
        created_at=portfolio.created_at.isoformat() if portfolio.created_at else None,
    )
    return body


def _day(value) -> Optional[str]:
    return value.date().isoformat() if value else None


def _application_card(app: Application) -> dict:
    status = application_status(app.status)
    job = app.job
    return {
        "id": app.id,
        "jobId": job.id,
        "jobTitle": job.title,
        "company": job.employer.fullname if job.employer else "",
        "location": job.location,
        "workType": job.shift_type,
        "appliedDate": _day(app.applied_at),
        "status": status,
        "message": STATUS_MESSAGES[status],
        "jobDescription": job.description,
        "requirements": split_list(job.job_requirements),
        "workDetails": (
            {
                "startDate": _day(job.schedule_start) or "TBD",
                "schedule": f"{_day(job.schedule_start)} to {_day(job.schedule_end)}",
                "contact": "Staff will reach out",
            }
            if status == "accepted" else None
        ),
    }


def caregiver_dashboard(db: Session, user: User) -> dict:
    """Profile summary, portfolio and every application with its caregiver-facing status."""
    portfolio = db.query(Portfolio).filter(Portfolio.user_id == user.id).first()
    applications = (
        db.query(Application)
        .filter(Application.employee_id == user.id)
        .order_by(Application.applied_at.desc())
        .all()
    )
    cards = [_application_card(a) for a in applications]
    return {
        "user": {
            "id": user.id,
            "name": user.fullname,
            "email": user.email,
            "phone": user.phone or "",
            "location": (portfolio.state_where_experience_gained if portfolio else None) or "",
            "profileImage": (portfolio.profile_image if portfolio else None) or "",
            "joinDate": _day(user.created_at),
            "skills": split_list(portfolio.comfortability if portfolio else None),
            "certifications": split_list(portfolio.certifications if portfolio else None),
            "isVerified": bool(portfolio and portfolio.is_verified),
            "isActive": bool(user.is_active),
            "completedJobs": sum(1 for c in cards if c["status"] == "accepted"),
        },
        "portfolio": portfolio_out(portfolio),
        "applications": cards,
    }


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), current_user: User = Depends(caregiver_only)):
    return caregiver_dashboard(db, current_user)


class StatusIn(BaseModel):
    is_active: bool


@router.get("/status")
def get_status(current_user: User = Depends(caregiver_only)):
    return {"is_active": bool(current_user.is_active)}


@router.patch("/status")
def set_status(
    payload: StatusIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(caregiver_only),
):
    current_user.is_active = payload.is_active
    db.commit()
    return {"ok": True, "is_active": payload.is_active}


class PortfolioIn(BaseModel):
    sex: Optional[str] = None
    age: Optional[int] = None
    certifications: Optional[str] = None
    experience: Optional[str] = None
    state_where_experience_gained: Optional[str] = None
    suitable_work_days: Optional[str] = None
    suitable_work_shift: Optional[str] = None
    comfortability: Optional[str] = None
    university_college: Optional[str] = None
    study_field: Optional[str] = None
    degree: Optional[str] = None
    english_skill: Optional[str] = None
    us_living_years: Optional[int] = None
    driving_details: Optional[str] = None
    authorized_to_work: Optional[bool] = None
    currently_employed: Optional[bool] = None
    reason_left_previous_job: Optional[str] = None
    job_type_preference: Optional[str] = None
    profile_image: Optional[str] = None


@router.get("/portfolio")
def get_portfolio(db: Session = Depends(get_db), current_user: User = Depends(caregiver_only)):
    portfolio = db.query(Portfolio).filter(Portfolio.user_id == current_user.id).first()
    return {"portfolio": portfolio_out(portfolio)}


@router.post("/portfolio")
def save_portfolio(
    payload: PortfolioIn,
    mode: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(caregiver_only),
):
    """`mode=full` writes every field (missing ones cleared); otherwise only the fields sent."""
    full = mode == "full"
    existing = db.query(Portfolio).filter(Portfolio.user_id == current_user.id).first()
    if existing is None and not full:
        raise HTTPException(400, "Portfolio not created yet. Submit full portfolio first.")

    data = payload.model_dump() if full else payload.model_dump(exclude_unset=True)
    portfolio = existing or Portfolio(user_id=current_user.id)
    for field, value in data.items():
        setattr(portfolio, field, value)
    if existing is None:
        db.add(portfolio)
    db.commit()
    db.refresh(portfolio)
    log.info("Caregiver %s saved portfolio %s (%s)", current_user.id, portfolio.id, "full" if full else "partial")
    return {"ok": True, "portfolio": portfolio_out(portfolio)}
