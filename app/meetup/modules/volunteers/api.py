from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.notifications.triggers import (
    send_volunteer_promotion_email,
    send_volunteer_welcome_email,
)
from app.meetup.modules.volunteers.models import Volunteer
from app.meetup.modules.volunteers.service import (
    EmailConflict,
    convert_to_member,
    create_volunteer,
    delete_volunteer,
    update_volunteer,
    validate_volunteer_payload,
    volunteer_detail,
    volunteer_row,
)
from app.meetup.rbac import require_auth, require_role
from app.meetup.utils import json_body

bp = Blueprint("volunteers", __name__)


def _get_volunteer_or_404(volunteer_id: int, message: str = "Not found"):
    volunteer = db_session().get(Volunteer, volunteer_id)
    if volunteer is None:
        return None, (jsonify({"error": message}), 404)
    return volunteer, None


# ---------- List / create ----------
@bp.get("/volunteers")
@require_auth
def volunteers_list():
    volunteers = db_session().query(Volunteer).order_by(Volunteer.name.asc()).all()
    return jsonify([volunteer_row(v) for v in volunteers])


@bp.post("/volunteers")
@require_role("EVENT_LEAD")
def volunteers_create():
    s = db_session()
    payload = json_body()
    errors = validate_volunteer_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        volunteer = create_volunteer(s, payload, g.current_user)
    except EmailConflict as e:
        return jsonify({"error": str(e)}), 409
    s.commit()

    send_volunteer_welcome_email(volunteer.name, volunteer.email, volunteer.role, g.current_user.display_name)
    return jsonify(volunteer_row(volunteer)), 201


# ---------- Detail ----------
@bp.get("/volunteers/<int:volunteer_id>")
@require_auth
def volunteers_get(volunteer_id: int):
    volunteer, err = _get_volunteer_or_404(volunteer_id)
    if err:
        return err
    return jsonify(volunteer_detail(volunteer))


@bp.patch("/volunteers/<int:volunteer_id>")
@require_role("EVENT_LEAD")
def volunteers_patch(volunteer_id: int):
    s = db_session()
    volunteer, err = _get_volunteer_or_404(volunteer_id)
    if err:
        return err
    payload = json_body()
    errors = validate_volunteer_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        update_volunteer(s, volunteer, payload, g.current_user)
    except EmailConflict as e:
        return jsonify({"error": str(e)}), 409
    s.commit()
    return jsonify(volunteer_row(volunteer))


@bp.delete("/volunteers/<int:volunteer_id>")
@require_role("EVENT_LEAD")
def volunteers_delete(volunteer_id: int):
    s = db_session()
    volunteer, err = _get_volunteer_or_404(volunteer_id)
    if err:
        return err
    delete_volunteer(s, volunteer, g.current_user)
    s.commit()
    return jsonify({"success": True})


# ---------- Convert to member ----------
@bp.post("/volunteers/<int:volunteer_id>/convert")
@require_role("ADMIN")
def volunteers_convert(volunteer_id: int):
    s = db_session()
    volunteer, err = _get_volunteer_or_404(volunteer_id, "Volunteer not found")
    if err:
        return err
    if volunteer.user_id:
        return jsonify({"error": "This volunteer is already linked to a member account"}), 409
    if not volunteer.email:
        return jsonify({"error": "Volunteer must have an email address to be converted to a member"}), 400

    user, linked = convert_to_member(s, volunteer, g.current_user)
    s.commit()
    current_app.logger.info("Volunteer %s converted: user=%s linked=%s", volunteer.id, user.id, linked)

    send_volunteer_promotion_email(volunteer.name, user.email)
    body = {
        "user": user.to_dict(),
        "linked": linked,
        "message": "Volunteer linked to existing member account" if linked else "Volunteer converted to member",
    }
    return jsonify(body), 200 if linked else 201
