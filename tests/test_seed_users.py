from models import User
from utils.security import check_password
from scripts.seed_users import seed_users


def test_seed_users_creates_accounts_once(db):
    entries = [
        {"fullname": "Admin", "email": "Admin@FigaCare.com", "password": "pw-admin", "role": "admin"},
        {"fullname": "Staff", "email": "staff@figacare.com", "password": "pw-staff", "role": "STAFF"},
        {"email": "broken", "password": "x", "role": "STAFF"},
        {"email": "norole@figacare.com", "password": "x", "role": "OWNER"},
    ]

    assert seed_users(db, entries) == 2
    assert seed_users(db, entries) == 0

    admin = db.query(User).filter(User.email == "admin@figacare.com").one()
    assert admin.role == "ADMIN"
    assert check_password("pw-admin", admin.password_hash)
    assert db.query(User).count() == 2
