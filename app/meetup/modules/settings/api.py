from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, request

from app.meetup.db import db_session
from app.meetup.modules.settings.service import (
    DEFAULT_MEETUP_NAME,
    decode_data_uri,
    get_setting_values,
    upsert_setting,
    validate_setting_payload,
)
from app.meetup.rbac import require_auth, require_role
from app.meetup.utils import iso, json_body

bp = Blueprint("settings", __name__)


@bp.get("/settings")
@require_auth
def settings_get():
    return jsonify(get_setting_values(db_session()))


@bp.patch("/settings")
@require_role("SUPER_ADMIN")
def settings_patch():
    s = db_session()
    payload = json_body()
    errors = validate_setting_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    setting = upsert_setting(s, payload["key"], payload["value"], g.current_user)
    s.commit()
    return jsonify(
        {
            "id": setting.id,
            "key": setting.key,
            "value": setting.value,
            "updatedAt": iso(setting.updated_at),
        }
    )


# ---------- Public (no auth) ----------
@bp.get("/settings/public")
def settings_public():
    values = get_setting_values(db_session(), ("meetup_name", "logo_light", "logo_dark"))
    return jsonify(
        {
            "meetupName": values.get("meetup_name") or DEFAULT_MEETUP_NAME,
            "logoLight": values.get("logo_light"),
            "logoDark": values.get("logo_dark"),
        }
    )


@bp.get("/settings/logo")
def settings_logo():
    """Stored logo as a real image so email clients and <img> tags can fetch it."""
    key = "logo_dark" if request.args.get("variant") == "dark" else "logo_light"
    decoded = decode_data_uri(get_setting_values(db_session(), (key,)).get(key))
    if decoded is None:
        return jsonify({"error": "Not found"}), 404
    content_type, data = decoded
    resp = Response(data, status=200, mimetype=content_type)
    resp.headers["Cache-Control"] = "public, max-age=3600, s-maxage=3600, stale-while-revalidate=86400"
    return resp
