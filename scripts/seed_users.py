"""
Create staff/admin accounts from a YAML file.

Those roles cannot sign themselves up, so fresh deployments seed them here:

    python scripts/seed_users.py [path/to/users.yml]
"""
import logging
import os
import sys

import yaml
from sqlalchemy.orm import Session

# Add repository root to path so we can import models/db
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from database import Base, SessionLocal, engine
from models import Role, User
from utils.security import hash_password
from utils.otp_service import is_valid_email, normalize_email

log = logging.getLogger("seed_users")

DEFAULT_FILE = os.path.join(os.path.dirname(__file__), "seed_users.yml")


def seed_users(db: Session, entries: list) -> int:
    created = 0
    roles = {r.value for r in Role}
    for entry in entries:
        email = normalize_email(entry.get("email"))
        role = str(entry.get("role", "")).strip().upper()
        if not is_valid_email(email) or role not in roles or not entry.get("password"):
            log.warning("Skipping invalid entry for %r", entry.get("email"))
            continue
        if db.query(User).filter(User.email == email).first():
            log.info("User %s already exists. Skipping.", email)
            continue

        db.add(User(
            fullname=str(entry.get("fullname") or email).strip(),
            email=email,
            phone=entry.get("phone"),
            password_hash=hash_password(str(entry["password"])),
            role=role,
        ))
        log.info("Adding %s %s", role, email)
        created += 1

    db.commit()
    return created


def main(path: str = DEFAULT_FILE) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    Base.metadata.create_all(bind=engine)

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    db: Session = SessionLocal()
    try:
        created = seed_users(db, data.get("users", []))
    finally:
        db.close()
    log.info("Seeded %s user(s).", created)


if __name__ == "__main__":
    main(*sys.argv[1:2])
