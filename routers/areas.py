from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from models import User, utcnow
from routers.admin import admin_metrics
from routers.auth import user_out
from routers.caregiver import caregiver_dashboard
from routers.jobs import employer_dashboard
from routers.staff import staff_dashboard

router = APIRouter(tags=["Areas"])


def _session_user(request: Request, db: Session) -> User:
    # RoleGateMiddleware has already checked the token and role.
    claims = getattr(request.state, "user", None) or {}
    sub = str(claims.get("sub") or "")
    user = db.get(User, int(sub)) if sub.isdigit() else None
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# Area -> what its landing page shows besides the signed-in user.
AREA_DATA = {
    "admin": lambda db, user: {"metrics": admin_metrics(db, utcnow())},
    "staff": lambda db, user: {"queues": staff_dashboard(db)},
    "employer": employer_dashboard,
    "caregiver": caregiver_dashboard,
}


def _dashboard(area: str):
    build = AREA_DATA[area]

    def dashboard(request: Request, db: Session = Depends(get_db)):
        user = _session_user(request, db)
        body = {"status": "success", "area": area}
        body.update(build(db, user))
        # caregiver_dashboard brings its own caregiver-shaped "user".
        body.setdefault("user", user_out(user))
        return body

    dashboard.__name__ = f"{area}_dashboard"
    return dashboard


for _area in AREA_DATA:
    router.add_api_route(f"/{_area}/dashboard", _dashboard(_area), methods=["GET"])
