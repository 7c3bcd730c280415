import pytest

from models import Application, JobStatus, Portfolio, Role, User


PORTFOLIO = {
    "sex": "Female",
    "age": "34",
    "certifications": "CNA, CPR",
    "comfortability": "Dementia care, Lifting",
    "state_where_experience_gained": "Texas",
    "suitable_work_days": "Weekdays",
    "english_skill": "Fluent",
    "authorized_to_work": True,
}


@pytest.fixture
def caregiver(make_user):
    return make_user("cg@example.com", role=Role.EMPLOYEE.value, fullname="Grace Carer")


@pytest.fixture
def employer(make_user):
    return make_user("boss@example.com", role=Role.EMPLOYER.value, fullname="Sunrise Home Care")


def test_partial_portfolio_needs_a_full_one_first(client, caregiver, auth, db):
    resp = client.post("/api/caregiver/portfolio", json={"sex": "Female"}, headers=auth(caregiver))

    assert resp.status_code == 400
    assert db.query(Portfolio).count() == 0


def test_full_then_partial_portfolio(client, caregiver, auth, db):
    full = client.post("/api/caregiver/portfolio?mode=full", json=PORTFOLIO, headers=auth(caregiver))
    assert full.status_code == 200
    assert full.json()["portfolio"]["age"] == 34

    partial = client.post("/api/caregiver/portfolio", json={"english_skill": "Native"}, headers=auth(caregiver))
    saved = partial.json()["portfolio"]
    assert saved["english_skill"] == "Native"
    assert saved["certifications"] == "CNA, CPR"

    again = client.post("/api/caregiver/portfolio?mode=full", json={"sex": "Female"}, headers=auth(caregiver))
    assert again.json()["portfolio"]["certifications"] is None
    assert db.query(Portfolio).count() == 1

    got = client.get("/api/caregiver/portfolio", headers=auth(caregiver)).json()
    assert got["portfolio"]["sex"] == "Female"
    assert got["portfolio"]["is_verified"] is False


def test_portfolio_is_caregiver_only(client, employer, auth):
    assert client.get("/api/caregiver/portfolio", headers=auth(employer)).status_code == 401


def test_availability_status(client, caregiver, auth, db):
    assert client.get("/api/caregiver/status", headers=auth(caregiver)).json() == {"is_active": True}

    resp = client.patch("/api/caregiver/status", json={"is_active": False}, headers=auth(caregiver))

    assert resp.json() == {"ok": True, "is_active": False}
    db.expire_all()
    assert db.get(User, caregiver.id).is_active is False
    assert client.patch("/api/caregiver/status", json={"is_active": "maybe"}, headers=auth(caregiver)).status_code == 422


def test_apply_requires_portfolio(client, caregiver, employer, make_job, auth):
    job = make_job(employer)

    resp = client.post("/api/applications", json={"jobId": job.id}, headers=auth(caregiver))

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please complete your portfolio before applying."


def test_apply_once(client, caregiver, employer, make_job, make_portfolio, auth, db):
    job = make_job(employer)
    portfolio = make_portfolio(caregiver)

    first = client.post(
        "/api/applications",
        json={"jobId": job.id, "coverLetter": "  I have five years of night-shift experience. "},
        headers=auth(caregiver),
    )
    second = client.post("/api/applications", json={"jobId": job.id}, headers=auth(caregiver))

    assert first.status_code == 200
    application = first.json()["application"]
    assert application["status"] == "PENDING"
    assert application["portfolio_id"] == portfolio.id
    assert application["cover_letter"] == "I have five years of night-shift experience."
    assert second.status_code == 409
    assert db.query(Application).count() == 1


def test_apply_to_missing_or_unapproved_job(client, caregiver, employer, make_job, make_portfolio, auth):
    make_portfolio(caregiver)
    pending = make_job(employer, status=JobStatus.PENDING.value)

    assert client.post("/api/applications", json={"jobId": 999}, headers=auth(caregiver)).status_code == 404
    assert client.post("/api/applications", json={"jobId": pending.id}, headers=auth(caregiver)).status_code == 400


def test_only_caregivers_apply(client, employer, make_job, auth):
    job = make_job(employer)
    assert client.post("/api/applications", json={"jobId": job.id}, headers=auth(employer)).status_code == 401


def test_dashboard_maps_application_status(
    client, caregiver, employer, make_job, make_portfolio, make_application, auth
):
    portfolio = make_portfolio(caregiver, comfortability="Dementia care, Lifting", certifications="CNA", is_verified=True)
    accepted = make_job(employer, title="Accepted job")
    rejected = make_job(employer, title="Rejected job")
    waiting = make_job(employer, title="Waiting job")
    make_application(accepted, caregiver, portfolio, status=JobStatus.APPROVED.value)
    make_application(rejected, caregiver, portfolio, status=JobStatus.REJECTED.value)
    make_application(waiting, caregiver, portfolio)

    resp = client.get("/api/caregiver/dashboard", headers=auth(caregiver))

    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["skills"] == ["Dementia care", "Lifting"]
    assert body["user"]["certifications"] == ["CNA"]
    assert body["user"]["isVerified"] is True
    assert body["user"]["completedJobs"] == 1
    assert body["portfolio"]["id"] == portfolio.id

    by_title = {a["jobTitle"]: a for a in body["applications"]}
    assert by_title["Accepted job"]["status"] == "accepted"
    assert by_title["Accepted job"]["workDetails"]["contact"] == "Staff will reach out"
    assert by_title["Rejected job"]["status"] == "rejected"
    assert by_title["Rejected job"]["workDetails"] is None
    assert by_title["Waiting job"]["status"] == "pending"
    assert "under review" in by_title["Waiting job"]["message"]


def test_dashboard_page_without_portfolio(client, caregiver, auth):
    resp = client.get("/caregiver/dashboard", headers=auth(caregiver))

    assert resp.status_code == 200
    body = resp.json()
    assert body["area"] == "caregiver"
    assert body["portfolio"] is None
    assert body["applications"] == []
    assert body["user"]["skills"] == []
