from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.meetup.constants import ASSIGNABLE_ROLES
from app.meetup.db import db_session, unfiltered_users
from app.meetup.models import User
from app.meetup.modules.members.service import (
    change_member_role,
    coerce_role,
    find_any_user_by_email,
    invite_member,
    list_assignable_members,
    list_members,
    normalize_email,
    owned_record_counts,
    resolve_user_ref,
    soft_delete_member,
)
from app.meetup.modules.notifications.triggers import send_member_invitation_email
from app.meetup.rbac import require_role
from app.meetup.utils import json_body, parse_int

bp = Blueprint("members", __name__)


def _is_super_admin(user: User) -> bool:
    return user.global_role == "SUPER_ADMIN"


# ---------- List ----------
@bp.get("/members")
@require_role("ADMIN")
def members_list():
    return jsonify([u.to_dict() for u in list_members(db_session())])


@bp.get("/members/list")
@require_role("EVENT_LEAD")
def members_picker():
    users = list_assignable_members(db_session())
    return jsonify([{**u.brief(), "globalRole": u.global_role} for u in users])


# ---------- Invite ----------
@bp.post("/members")
@require_role("ADMIN")
def members_create():
    s = db_session()
    u = g.current_user
    payload = json_body()

    email = normalize_email(payload.get("email"))
    if not email:
        return jsonify({"error": "Email is required"}), 400
    role = coerce_role(payload.get("globalRole"))
    if role == "ADMIN" and not _is_super_admin(u):
        return jsonify({"error": "Only super admins can assign the Admin role"}), 403

    existing = find_any_user_by_email(s, email)
    if existing is not None and existing.is_active:
        return jsonify({"error": "A member with this email already exists"}), 409

    user = invite_member(s, email=email, name=payload.get("name"), role=role, actor=u, existing=existing)
    s.commit()
    current_app.logger.info("Member invited: user=%s role=%s by=%s", user.id, role, u.id)

    send_member_invitation_email(user.email, user.name, role, u.display_name)
    return jsonify(user.to_dict()), 201


# ---------- Role change ----------
@bp.patch("/members")
@require_role("ADMIN")
def members_patch():
    s = db_session()
    u = g.current_user
    payload = json_body()

    role = payload.get("globalRole")
    try:
        user_id = parse_int(payload.get("userId"))
    except ValueError:
        user_id = None
    if user_id is None or not role:
        return jsonify({"error": "Missing userId or globalRole"}), 400
    if role not in ASSIGNABLE_ROLES:
        return jsonify({"error": "Invalid role"}), 400
    if user_id == u.id:
        return jsonify({"error": "You cannot change your own role"}), 400

    target = s.get(User, user_id)
    if target is None:
        return jsonify({"error": "User not found"}), 404
    if not _is_super_admin(u) and (role == "ADMIN" or target.global_role in ("ADMIN", "SUPER_ADMIN")):
        return jsonify({"error": "Only super admins can manage admins"}), 403

    change_member_role(s, target, role, u)
    s.commit()
    return jsonify(target.to_dict())


# ---------- Soft delete ----------
@bp.delete("/members/<int:user_id>")
@require_role("SUPER_ADMIN")
def members_delete(user_id: int):
    s = db_session()
    u = g.current_user
    if user_id == u.id:
        return jsonify({"error": "You cannot delete your own account"}), 400

    target = unfiltered_users(s).filter(User.id == user_id).one_or_none()
    if target is None or not target.is_active:
        return jsonify({"error": "User not found"}), 404
    if _is_super_admin(target):
        return jsonify({"error": "Super admins cannot be deleted"}), 403

    payload = json_body()
    raw_successor = payload.get("reassignTo", request.args.get("reassignTo"))
    try:
        successor = resolve_user_ref(s, raw_successor, "Reassignment target")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if successor is not None and successor.id == target.id:
        return jsonify({"error": "Cannot reassign records to the member being deleted"}), 400

    counts = owned_record_counts(s, target.id)
    if successor is None and any(counts.values()):
        return (
            jsonify(
                {
                    "error": "This member owns records. Reassign them to another member before deleting.",
                    "ownedCounts": counts,
                }
            ),
            409,
        )

    soft_delete_member(s, target, u, successor=successor, owned_counts=counts)
    s.commit()
    current_app.logger.info(
        "Member soft-deleted: user=%s reassigned_to=%s by=%s",
        target.id,
        successor.id if successor else None,
        u.id,
    )
    return jsonify({"success": True, "reassignedTo": successor.id if successor else None})
