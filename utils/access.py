from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from models import Role
from utils.security import TOKEN_COOKIE, decode_token


log = logging.getLogger(__name__)

# Path prefix -> the only role allowed in that area.
ROLE_AREAS = {
    "/admin": Role.ADMIN.value,
    "/staff": Role.STAFF.value,
    "/employer": Role.EMPLOYER.value,
    "/caregiver": Role.EMPLOYEE.value,
}

SIGNIN_PATH = "/signin"


def required_role(path: str) -> Optional[str]:
    for prefix, role in ROLE_AREAS.items():
        if path == prefix or path.startswith(prefix + "/"):
            return role
    return None


def _request_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(TOKEN_COOKIE) or None


class RoleGateMiddleware(BaseHTTPMiddleware):
    """Sends anyone without the area's role to the sign-in page."""

    async def dispatch(self, request: Request, call_next):
        role = required_role(request.url.path)
        if role is None:
            return await call_next(request)

        token = _request_token(request)
        claims = decode_token(token) if token else None
        if not claims or claims.get("role") != role:
            log.info("Blocked %s from %s (needs %s)", (claims or {}).get("sub", "anonymous"), request.url.path, role)
            query = urlencode({"callbackUrl": str(request.url)})
            return RedirectResponse(f"{SIGNIN_PATH}?{query}", status_code=307)

        request.state.user = claims
        return await call_next(request)
