from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.venues.models import VenuePartner
from app.meetup.modules.venues.service import (
    create_venue_partner,
    delete_venue_partner,
    list_venue_partners,
    update_venue_partner,
    validate_venue_partner_payload,
    venue_partner_detail,
)
from app.meetup.rbac import require_auth, require_role
from app.meetup.utils import json_body

bp = Blueprint("venues", __name__)


def _get_partner_or_404(partner_id: int):
    partner = db_session().get(VenuePartner, partner_id)
    if partner is None:
        return None, (jsonify({"error": "Not found"}), 404)
    return partner, None


@bp.get("/venues")
@require_auth
def venues_list():
    return jsonify(list_venue_partners(db_session(), g.current_user))


@bp.post("/venues")
@require_role("EVENT_LEAD")
def venues_create():
    s = db_session()
    payload = json_body()
    errors = validate_venue_partner_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    partner = create_venue_partner(s, payload, g.current_user)
    s.commit()
    return jsonify(partner.to_dict()), 201


@bp.get("/venues/<int:partner_id>")
@require_auth
def venues_get(partner_id: int):
    partner, err = _get_partner_or_404(partner_id)
    if err:
        return err
    return jsonify(venue_partner_detail(partner))


@bp.patch("/venues/<int:partner_id>")
@require_role("EVENT_LEAD")
def venues_patch(partner_id: int):
    s = db_session()
    partner, err = _get_partner_or_404(partner_id)
    if err:
        return err
    payload = json_body()
    errors = validate_venue_partner_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400

    update_venue_partner(s, partner, payload, g.current_user)
    s.commit()
    return jsonify(partner.to_dict())


@bp.delete("/venues/<int:partner_id>")
@require_role("EVENT_LEAD")
def venues_delete(partner_id: int):
    s = db_session()
    partner, err = _get_partner_or_404(partner_id)
    if err:
        return err
    delete_venue_partner(s, partner, g.current_user)
    s.commit()
    return jsonify({"success": True})
