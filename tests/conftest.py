import re
from datetime import datetime, timedelta

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from database import Base, get_db, make_engine
from main import app
from models import Application, Job, JobStatus, Portfolio, Role, User
from routers.auth import get_mail_transport, get_otp_service
from utils.brevo_email import EmailSendError
from utils.otp_service import OtpService
from utils.security import create_token, hash_password


class FakeTransport:
    """Stands in for BrevoTransport; records what would have been sent."""

    def __init__(self, configured=True, fail_reason=None):
        self.configured = configured
        self.fail_reason = fail_reason
        self.sent = []

    def send(self, *, to_email, subject, html, text=None):
        if self.fail_reason:
            raise EmailSendError(self.fail_reason, "simulated")
        self.sent.append({"to": to_email, "subject": subject, "html": html, "text": text})
        return f"<msg-{len(self.sent)}@brevo>"

    @property
    def last_code(self):
        assert self.sent, "no email was sent"
        return re.search(r"\b(\d{6})\b", self.sent[-1]["text"]).group(1)


class FrozenClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 30, 0))


@pytest.fixture
def otp_service(db, transport, clock):
    return OtpService(db, transport, clock=clock)


@pytest.fixture
def client(session_factory, transport, clock):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _get_otp_service(session: Session = Depends(get_db)):
        return OtpService(session, transport, clock=clock)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_mail_transport] = lambda: transport
    app.dependency_overrides[get_otp_service] = _get_otp_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(email, password="secret123", role=Role.EMPLOYEE.value, fullname="Test User"):
        user = User(fullname=fullname, email=email, password_hash=hash_password(password), role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth():
    """Bearer headers for a user."""
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user=user)}"}

    return _headers


@pytest.fixture
def make_job(db, clock):
    def _make(employer, title="Overnight elder care", status=JobStatus.APPROVED.value, **fields):
        values = dict(
            location="Austin, TX",
            schedule_start=clock.now + timedelta(days=1),
            schedule_end=clock.now + timedelta(days=8),
            shift_type="Overnight",
            description="Overnight support for an elderly client living at home.",
            posted_at=clock.now,
        )
        values.update(fields)
        job = Job(employer_id=employer.id, title=title, status=status, **values)
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def make_portfolio(db):
    def _make(user, **fields):
        portfolio = Portfolio(user_id=user.id, **fields)
        db.add(portfolio)
        db.commit()
        db.refresh(portfolio)
        return portfolio

    return _make


@pytest.fixture
def make_application(db):
    def _make(job, employee, portfolio=None, status=JobStatus.PENDING.value, **fields):
        application = Application(
            job_id=job.id,
            employee_id=employee.id,
            portfolio_id=portfolio.id if portfolio else None,
            status=status,
            **fields,
        )
        db.add(application)
        db.commit()
        db.refresh(application)
        return application

    return _make
