from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from flask import Request, current_app, session
from jose import JWTError, jwt

from app.meetup.constants import ACCESS_TOKEN_TTL_SECONDS

JWT_ALGORITHM = "HS256"


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header, form, or JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        json_data = req.get_json(silent=True) or {}
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def bearer_token(req: Request) -> str | None:
    header = req.headers.get("Authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def issue_access_token(user_id: int, email: str, global_role: str) -> str:
    now = datetime.utcnow()
    claims = {
        "id": user_id,
        "email": email,
        "globalRole": global_role,
        "iat": now,
        "exp": now + timedelta(seconds=ACCESS_TOKEN_TTL_SECONDS),
    }
    return jwt.encode(claims, current_app.config["AUTH_SECRET"], algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Verified claims, or None for a bad/expired token."""
    try:
        return jwt.decode(token, current_app.config["AUTH_SECRET"], algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        current_app.logger.info("Rejected bearer token: %s", e)
        return None


def new_refresh_token() -> str:
    return secrets.token_hex(32)
