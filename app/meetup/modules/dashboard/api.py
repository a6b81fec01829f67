from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.dashboard.service import build_dashboard
from app.meetup.rbac import require_auth

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@require_auth
def dashboard():
    return jsonify(build_dashboard(db_session(), g.current_user))
