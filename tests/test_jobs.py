from datetime import datetime, timedelta

import pytest

from models import Job, JobStatus, Role
from routers.jobs import job_card, posted_label


JOB = {
    "title": "Weekend companion care",
    "location": "Austin, TX",
    "schedule_start": "2026-04-04T08:00:00Z",
    "schedule_end": "2026-04-05T20:00:00Z",
    "shift_type": "Weekend",
    "job_requirements": "CPR, First aid , ",
    "description": "Companionship and light meal prep for a retired nurse.",
    "job_urgency": "HIGH",
}


@pytest.fixture
def employer(make_user):
    return make_user("boss@example.com", role=Role.EMPLOYER.value, fullname="Sunrise Home Care")


def test_employer_posts_job_for_review(client, employer, auth, db):
    resp = client.post("/api/job", json=JOB, headers=auth(employer))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert body["is_reviewed"] is False
    assert body["employer"]["email"] == "boss@example.com"

    job = db.get(Job, body["id"])
    # Stored as naive UTC.
    assert job.schedule_start == datetime(2026, 4, 4, 8, 0)


@pytest.mark.parametrize(
    "override",
    [
        {"title": "Care"},
        {"location": "TX"},
        {"description": "Too short"},
        {"shift_type": "Sometimes"},
        {"job_urgency": "URGENT"},
        {"schedule_start": "next week"},
    ],
)
def test_job_post_validation(client, employer, auth, override):
    resp = client.post("/api/job", json={**JOB, **override}, headers=auth(employer))
    assert resp.status_code == 422


def test_job_schedule_must_not_run_backwards(client, employer, auth):
    resp = client.post(
        "/api/job",
        json={**JOB, "schedule_end": "2026-04-01T08:00:00Z"},
        headers=auth(employer),
    )
    assert resp.status_code == 400


def test_only_employers_post_jobs(client, make_user, auth):
    caregiver = make_user("cg@example.com", role=Role.EMPLOYEE.value)

    assert client.post("/api/job", json=JOB).status_code == 401
    assert client.post("/api/job", json=JOB, headers=auth(caregiver)).status_code == 401


def test_employer_lists_only_own_jobs(client, employer, make_user, make_job, auth):
    other = make_user("other@example.com", role=Role.EMPLOYER.value)
    make_job(employer, title="Mine approved")
    make_job(employer, title="Mine pending", status=JobStatus.PENDING.value)
    make_job(other, title="Not mine at all")

    every = client.get("/api/job", headers=auth(employer)).json()
    pending = client.get("/api/job?status=pending", headers=auth(employer)).json()

    assert {j["title"] for j in every["data"]} == {"Mine approved", "Mine pending"}
    assert every["meta"]["total"] == 2
    assert [j["title"] for j in pending["data"]] == ["Mine pending"]


def test_employer_cannot_see_other_employers_job(client, employer, make_user, make_job, auth):
    other_job = make_job(make_user("other@example.com", role=Role.EMPLOYER.value))

    assert client.get(f"/api/job/{other_job.id}", headers=auth(employer)).status_code == 404
    assert client.patch(f"/api/job/{other_job.id}", json={}, headers=auth(employer)).status_code == 404
    assert client.delete(f"/api/job/{other_job.id}", headers=auth(employer)).status_code == 404


def test_editing_an_approved_job_sends_it_back_for_review(client, employer, make_job, auth, db):
    job = make_job(employer, is_reviewed=True)

    resp = client.patch(
        f"/api/job/{job.id}",
        json={"description": "Overnight support plus medication reminders twice a night."},
        headers=auth(employer),
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING"
    assert resp.json()["is_reviewed"] is False


def test_put_without_real_change_keeps_approval(client, employer, make_job, auth):
    job = make_job(employer, is_reviewed=True)

    resp = client.put(f"/api/job/{job.id}", json={"title": job.title}, headers=auth(employer))

    assert resp.json()["status"] == "APPROVED"


@pytest.mark.parametrize("status, code", [("COMPLETED", 200), ("APPROVED", 400), ("BOGUS", 400)])
def test_employer_status_changes(client, employer, make_job, auth, status, code):
    job = make_job(employer, status=JobStatus.PENDING.value)

    resp = client.patch(f"/api/job/{job.id}", json={"status": status}, headers=auth(employer))

    assert resp.status_code == code


def test_delete_cancels_instead_of_removing(client, employer, make_job, auth, db):
    job = make_job(employer)

    resp = client.delete(f"/api/job/{job.id}", headers=auth(employer))

    assert resp.json()["status"] == "CANCELLED"
    db.expire_all()
    assert db.get(Job, job.id).status == "CANCELLED"


def test_findjob_is_public_and_shows_approved_jobs(client, employer, make_job, make_user, make_application, clock):
    make_job(employer, title="Pending one", status=JobStatus.PENDING.value)
    job = make_job(
        employer,
        title="Live-in weekday help",
        job_requirements="CPR, Driving license",
        job_urgency="HIGH",
        posted_at=clock.now - timedelta(hours=1),
    )
    make_application(job, make_user("cg@example.com"))

    resp = client.get("/api/findjob")

    assert resp.status_code == 200
    [card] = resp.json()["data"]
    assert card["title"] == "Live-in weekday help"
    assert card["company"] == "Sunrise Home Care"
    assert card["shiftTypes"] == ["Night shift", "Ongoing"]
    assert card["duration"] == "Full-time, 7 days"
    assert card["requirements"] == ["CPR", "Driving license"]
    assert card["urgent"] is True
    assert card["applicants"] == 1
    assert card["isOpen"] is True


def test_findjob_paging(client, employer, make_job, clock):
    for i in range(3):
        make_job(employer, title=f"Job number {i}", posted_at=clock.now - timedelta(days=i))

    page = client.get("/api/findjob?take=1&skip=1").json()["data"]

    assert [c["title"] for c in page] == ["Job number 1"]


def test_job_card_short_job_with_deadline(clock):
    job = Job(
        title="One-time errand",
        location="Austin",
        schedule_start=clock.now,
        schedule_end=clock.now + timedelta(hours=3),
        shift_type="One-time",
        description="x" * 20,
        deadline=clock.now + timedelta(days=2),
        status="COMPLETED",
        posted_at=clock.now,
    )

    card = job_card(job, 0, clock.now)

    assert card["shiftTypes"] == ["One-time"]
    assert card["duration"] == "Part-time, 1 day"
    assert card["isOpen"] is False
    assert card["company"] == "-"


@pytest.mark.parametrize(
    "age, label",
    [
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=1), "1 minute ago"),
        (timedelta(hours=5), "5 hours ago"),
        (timedelta(days=2), "2 days ago"),
        (timedelta(days=65), "2 months ago"),
    ],
)
def test_posted_label(age, label):
    now = datetime(2026, 3, 2, 9, 30)
    assert posted_label(now - age, now) == label
