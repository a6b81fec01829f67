from __future__ import annotations

import secrets
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import func
from werkzeug.security import check_password_hash

from app.meetup.constants import ACCESS_TOKEN_TTL_SECONDS, REFRESH_TOKEN_TTL_DAYS
from app.meetup.db import db_session, unfiltered_users
from app.meetup.models import Account, RefreshToken, User
from app.meetup.security import (
    bearer_token,
    decode_access_token,
    ensure_csrf_token,
    issue_access_token,
    new_refresh_token,
)
from app.meetup.utils import json_body

bp = Blueprint("auth", __name__)
# Token exchange for API / mobile clients, mounted under /api
api_bp = Blueprint("auth_api", __name__)

_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if recent:
        _login_attempts[ip] = recent
    else:
        _login_attempts.pop(ip, None)
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from a bearer token, else from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    Soft-deleted users never resolve (the session filter hides them).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.auth_via = None
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    s = db_session()
    token = bearer_token(request)
    if token:
        claims = decode_access_token(token)
        if not claims or not claims.get("id"):
            return
        user = s.get(User, int(claims["id"]))
        if user:
            g.current_user = user
            g.auth_via = "bearer"
        return

    user_id = session.get("user_id")
    if not user_id:
        return
    user = s.get(User, int(user_id))
    if not user:
        session.pop("user_id", None)
        return
    g.current_user = user
    g.auth_via = "session"


@bp.post("/login")
def login_post():
    payload = json_body() if request.is_json else request.form
    payload = payload or {}
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Login failed (email=%s ip=%s request_id=%s)", email, ip, g.request_id)
        return jsonify({"error": "Invalid credentials"}), 401

    session["user_id"] = user.id
    session.permanent = True
    _login_attempts[ip].clear()
    current_app.logger.info("Login ok (user_id=%s request_id=%s)", user.id, g.request_id)
    return jsonify({"user": user.to_dict(), "csrfToken": ensure_csrf_token()})


@bp.post("/logout")
def logout():
    session.pop("user_id", None)
    session.pop("csrf_token", None)
    return jsonify({"success": True})


@bp.get("/me")
def me():
    user = getattr(g, "current_user", None)
    if not user:
        return jsonify({"error": "Unauthorized"}), 401
    return jsonify({"user": user.to_dict(), "csrfToken": ensure_csrf_token()})


def _issue_tokens(s, user: User) -> dict:
    refresh = RefreshToken(
        token=new_refresh_token(),
        user_id=user.id,
        expires_at=datetime.utcnow() + timedelta(days=REFRESH_TOKEN_TTL_DAYS),
    )
    s.add(refresh)
    return {
        "accessToken": issue_access_token(user.id, user.email, user.global_role),
        "refreshToken": refresh.token,
        "expiresIn": ACCESS_TOKEN_TTL_SECONDS,
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "image": user.image,
            "globalRole": user.global_role,
        },
    }


@api_bp.post("/auth/token")
def token_exchange():
    """
    Exchange a verified Google identity for API tokens.
    Sign-in is limited to known users, the configured super admin and invited volunteers.
    """
    from app.meetup.modules.volunteers.models import Volunteer

    exchange_secret = current_app.config.get("AUTH_EXCHANGE_SECRET") or ""
    if exchange_secret:
        supplied = request.headers.get("X-Auth-Exchange-Secret") or ""
        if not secrets.compare_digest(supplied.encode("utf-8"), exchange_secret.encode("utf-8")):
            return jsonify({"error": "Unauthorized"}), 401

    payload = json_body()
    email = payload.get("email")
    if not email or not isinstance(email, str):
        return jsonify({"error": "Email is required"}), 400

    normalized = email.strip().lower()
    name = payload.get("name") if isinstance(payload.get("name"), str) else None
    image = payload.get("image") if isinstance(payload.get("image"), str) else None
    google_id = payload.get("googleId")
    super_admin_email = current_app.config.get("SUPER_ADMIN_EMAIL") or ""
    is_super_admin = bool(super_admin_email) and normalized == super_admin_email

    s = db_session()
    try:
        user = unfiltered_users(s).filter(User.email == normalized).one_or_none()
        unlinked_volunteer = (
            s.query(Volunteer)
            .filter(func.lower(Volunteer.email) == normalized, Volunteer.user_id.is_(None))
            .order_by(Volunteer.id.asc())
            .first()
        )

        if user is not None and user.deleted_at is not None and not is_super_admin:
            return jsonify({"error": "This account has been deactivated."}), 401
        if user is None and not is_super_admin and unlinked_volunteer is None:
            return jsonify({"error": "Unauthorized. No account found."}), 401

        now = datetime.utcnow()
        if user is None:
            if is_super_admin:
                role = "SUPER_ADMIN"
            elif unlinked_volunteer is not None:
                role = "VOLUNTEER"
            else:
                role = "VIEWER"
            user = User(email=normalized, name=name or normalized, image=image, global_role=role, created_at=now, updated_at=now)
            s.add(user)
            s.flush()
        else:
            if name:
                user.name = name
            if image:
                user.image = image
            if is_super_admin:
                user.global_role = "SUPER_ADMIN"
                user.deleted_at = None
            user.updated_at = now

        if unlinked_volunteer is not None:
            unlinked_volunteer.user_id = user.id

        if google_id:
            account = (
                s.query(Account)
                .filter(Account.provider == "google", Account.provider_account_id == str(google_id))
                .one_or_none()
            )
            if account is None:
                s.add(Account(user_id=user.id, provider="google", provider_account_id=str(google_id)))

        body = _issue_tokens(s, user)
        s.commit()
        return jsonify(body)
    except Exception:
        s.rollback()
        current_app.logger.exception("Token generation failed (email=%s request_id=%s)", normalized, g.request_id)
        return jsonify({"error": "Failed to generate token"}), 500


@api_bp.post("/auth/refresh")
def token_refresh():
    payload = json_body()
    token = payload.get("refreshToken")
    if not token or not isinstance(token, str):
        return jsonify({"error": "Refresh token is required"}), 400

    s = db_session()
    stored = s.query(RefreshToken).filter(RefreshToken.token == token).one_or_none()
    if stored is None:
        return jsonify({"error": "Invalid refresh token"}), 401

    user = unfiltered_users(s).filter(User.id == stored.user_id).one_or_none()
    if user is None or user.deleted_at is not None:
        s.delete(stored)
        s.commit()
        return jsonify({"error": "This account has been deactivated."}), 401

    if stored.expires_at < datetime.utcnow():
        s.delete(stored)
        s.commit()
        return jsonify({"error": "Refresh token expired"}), 401

    # rotate: old token out, new token in, one commit
    s.delete(stored)
    body = _issue_tokens(s, user)
    s.commit()
    return jsonify(body)
