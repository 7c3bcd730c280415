from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import Base, engine, get_db
from routers.admin import router as admin_router
from routers.applications import router as applications_router
from routers.areas import router as areas_router
from routers.auth import router as auth_router
from routers.caregiver import router as caregiver_router
from routers.employer import router as employer_router
from routers.jobs import router as jobs_router
from routers.staff import router as staff_router
from utils.access import SIGNIN_PATH, RoleGateMiddleware


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables (simple projects; for production use migrations).
    Base.metadata.create_all(bind=engine)
    log.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
    yield


app = FastAPI(title="FIGA Care API", lifespan=lifespan)

app.add_middleware(RoleGateMiddleware)

for _router in (
    auth_router,
    jobs_router,
    applications_router,
    caregiver_router,
    staff_router,
    employer_router,
    admin_router,
):
    app.include_router(_router, prefix="/api")
app.include_router(areas_router)


@app.get("/")
def root():
    return {"status": "Backend running"}


@app.get("/api/health/database")
def database_health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log.exception("Database health check failed")
        raise HTTPException(503, "Database unavailable")
    return {"status": "ok"}


@app.get(SIGNIN_PATH)
def signin(callbackUrl: str = "/"):
    """Where the role gate sends browsers; the token comes from POST /api/auth/login."""
    return JSONResponse(
        status_code=401,
        content={
            "detail": "Sign in required",
            "login": "/api/auth/login",
            "callbackUrl": callbackUrl,
        },
    )
