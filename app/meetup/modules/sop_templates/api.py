from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.sop_templates.defaults import (
    KUG_CHENNAI_DESCRIPTION,
    KUG_CHENNAI_NAME,
    KUG_CHENNAI_TASKS,
)
from app.meetup.modules.sop_templates.models import SOPTemplate
from app.meetup.modules.sop_templates.service import (
    create_template,
    delete_template,
    update_template,
    validate_template_patch,
)
from app.meetup.rbac import require_auth, require_role
from app.meetup.utils import json_body

bp = Blueprint("sop_templates", __name__)


def _get_template_or_404(template_id: int):
    template = db_session().get(SOPTemplate, template_id)
    if template is None:
        return None, (jsonify({"error": "Not found"}), 404)
    return template, None


# ---------- List / create ----------
@bp.get("/templates")
@require_auth
def templates_list():
    s = db_session()
    templates = s.query(SOPTemplate).order_by(SOPTemplate.name.asc()).all()
    return jsonify([t.to_dict() for t in templates])


@bp.post("/templates")
@require_role("ADMIN")
def templates_create():
    s = db_session()
    payload = json_body()
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return jsonify({"error": "Name is required"}), 400

    template = create_template(
        s,
        name=name,
        description=payload.get("description"),
        default_tasks=payload.get("defaultTasks"),
        user=g.current_user,
    )
    s.commit()
    return jsonify(template.to_dict()), 201


@bp.post("/templates/default")
@require_role("ADMIN")
def templates_create_default():
    s = db_session()
    if s.query(SOPTemplate.id).filter(SOPTemplate.name == KUG_CHENNAI_NAME).first():
        return jsonify({"error": "Default SOP template already exists. You can duplicate or edit it instead."}), 409

    template = create_template(
        s,
        name=KUG_CHENNAI_NAME,
        description=KUG_CHENNAI_DESCRIPTION,
        default_tasks=KUG_CHENNAI_TASKS,
        user=g.current_user,
        audit_extra={"source": "default_sop"},
    )
    s.commit()
    return jsonify(template.to_dict()), 201


# ---------- Detail ----------
@bp.get("/templates/<int:template_id>")
@require_auth
def templates_get(template_id: int):
    template, err = _get_template_or_404(template_id)
    if err:
        return err
    return jsonify(template.to_dict())


@bp.patch("/templates/<int:template_id>")
@require_role("ADMIN")
def templates_patch(template_id: int):
    s = db_session()
    template, err = _get_template_or_404(template_id)
    if err:
        return err
    payload = json_body()
    errors = validate_template_patch(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    update_template(s, template, payload, g.current_user)
    s.commit()
    return jsonify(template.to_dict())


@bp.delete("/templates/<int:template_id>")
@require_role("ADMIN")
def templates_delete(template_id: int):
    s = db_session()
    template, err = _get_template_or_404(template_id)
    if err:
        return err
    delete_template(s, template, g.current_user)
    s.commit()
    return jsonify({"success": True})
