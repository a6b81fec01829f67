from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.meetup.db import db_session
from app.meetup.modules.events.models import Event
from app.meetup.modules.events.service import (
    create_event,
    delete_event,
    event_detail,
    event_summary,
    find_speaker_link,
    find_volunteer_link,
    link_speaker,
    link_volunteer,
    list_events_for,
    unlink_speaker,
    unlink_volunteer,
    update_event,
    update_speaker_link,
    update_volunteer_link,
    validate_event_payload,
    validate_speaker_link_patch,
    validate_volunteer_link_patch,
)
from app.meetup.modules.notifications.triggers import (
    announce_event_created,
    send_event_created_email,
    send_speaker_invitation_email,
    send_venue_confirmed_email,
)
from app.meetup.modules.sop_templates.models import SOPTemplate
from app.meetup.modules.sop_templates.service import replace_event_template
from app.meetup.modules.speakers.models import EventSpeaker, Speaker
from app.meetup.modules.venues.models import EventVenuePartner, VenuePartner
from app.meetup.modules.venues.service import (
    VenueConflict,
    find_venue_link,
    link_venue_partner,
    unlink_venue_partner,
    update_venue_link,
    validate_venue_link_patch,
)
from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer
from app.meetup.rbac import has_minimum_role, require_auth, require_event_access, require_role
from app.meetup.utils import json_body, parse_int

bp = Blueprint("events", __name__)


def _get_event_or_404(event_id: int):
    event = db_session().get(Event, event_id)
    if event is None:
        return None, (jsonify({"error": "Not found"}), 404)
    return event, None


def _id_from(raw, label: str):
    """Parse a required id from the body or query string; (id, error_response)."""
    try:
        value = parse_int(raw)
    except ValueError:
        return None, (jsonify({"error": f"{label} must be an integer"}), 400)
    if value is None:
        return None, (jsonify({"error": f"{label} is required"}), 400)
    return value, None


# ---------- List / create ----------
@bp.get("/events")
@require_auth
def events_list():
    events = list_events_for(db_session(), g.current_user)
    return jsonify([event_summary(e) for e in events])


@bp.post("/events")
@require_role("EVENT_LEAD")
def events_create():
    s = db_session()
    payload = json_body()
    errors = validate_event_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400
    try:
        parse_int(payload.get("templateId"))
    except ValueError:
        return jsonify({"error": "templateId must be an integer"}), 400

    event = create_event(s, payload, g.current_user)
    s.commit()
    current_app.logger.info("Event created: id=%s title=%r by user=%s", event.id, event.title, g.current_user.id)

    send_event_created_email(s, event.id)
    announce_event_created(s, event)
    return jsonify(event_summary(event)), 201


# ---------- Detail ----------
@bp.get("/events/<int:event_id>")
@require_event_access("read")
def events_get(event_id: int):
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    return jsonify(event_detail(event))


@bp.patch("/events/<int:event_id>")
@require_event_access("update")
def events_patch(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    payload = json_body()
    errors = validate_event_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400

    update_event(s, event, payload, g.current_user)
    s.commit()
    return jsonify(event_summary(event))


@bp.delete("/events/<int:event_id>")
@require_event_access("delete")
def events_delete(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    delete_event(s, event, g.current_user)
    s.commit()
    return jsonify({"success": True})


@bp.post("/events/<int:event_id>/change-template")
@require_auth
def events_change_template(event_id: int):
    if not has_minimum_role(g.current_user.global_role, "ADMIN"):
        return jsonify({"error": "Only admins can change the SOP template"}), 403
    s = db_session()
    payload = json_body()
    template_id, err = _id_from(payload.get("templateId"), "Template ID")
    if err:
        return err

    event = s.get(Event, event_id)
    if event is None:
        return jsonify({"error": "Event not found"}), 404
    template = s.get(SOPTemplate, template_id)
    if template is None:
        return jsonify({"error": "Template not found"}), 404
    if not isinstance(template.default_tasks, list) or not template.default_tasks:
        return jsonify({"error": "Template has no tasks"}), 400

    replace_event_template(s, event, template, g.current_user)
    s.commit()
    return jsonify({"success": True, "templateName": template.name})


# ---------- Speakers ----------
@bp.post("/events/<int:event_id>/speakers")
@require_event_access("update")
def event_speakers_add(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    payload = json_body()
    speaker_id, err = _id_from(payload.get("speakerId"), "speakerId")
    if err:
        return err
    speaker = s.get(Speaker, speaker_id)
    if speaker is None:
        return jsonify({"error": "Speaker not found"}), 404
    if find_speaker_link(s, event_id, speaker_id):
        return jsonify({"error": "Speaker already linked to this event"}), 409

    link = link_speaker(s, event, speaker, g.current_user)
    s.commit()

    send_speaker_invitation_email(s, link.id)
    return jsonify(link.to_dict()), 201


@bp.patch("/events/<int:event_id>/speakers/<int:link_id>")
@require_event_access("update")
def event_speakers_patch(event_id: int, link_id: int):
    s = db_session()
    link = s.get(EventSpeaker, link_id)
    if link is None or link.event_id != event_id:
        return jsonify({"error": "Not found"}), 404
    payload = json_body()
    errors = validate_speaker_link_patch(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        update_speaker_link(s, link, payload, g.current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(link.to_dict())


@bp.delete("/events/<int:event_id>/speakers")
@require_event_access("update")
def event_speakers_remove(event_id: int):
    s = db_session()
    speaker_id, err = _id_from(request.args.get("speakerId"), "speakerId query param")
    if err:
        return err
    link = find_speaker_link(s, event_id, speaker_id)
    if link is None:
        return jsonify({"error": "Link not found"}), 404
    unlink_speaker(s, link, g.current_user)
    s.commit()
    return jsonify({"success": True})


# ---------- Volunteers ----------
@bp.post("/events/<int:event_id>/volunteers")
@require_event_access("update")
def event_volunteers_add(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    payload = json_body()
    volunteer_id, err = _id_from(payload.get("volunteerId"), "volunteerId")
    if err:
        return err
    volunteer = s.get(Volunteer, volunteer_id)
    if volunteer is None:
        return jsonify({"error": "Volunteer not found"}), 404
    if find_volunteer_link(s, event_id, volunteer_id):
        return jsonify({"error": "Volunteer already linked to this event"}), 409

    link = link_volunteer(s, event, volunteer, payload.get("assignedRole"), g.current_user)
    s.commit()
    return jsonify(link.to_dict()), 201


@bp.patch("/events/<int:event_id>/volunteers/<int:link_id>")
@require_event_access("update")
def event_volunteers_patch(event_id: int, link_id: int):
    s = db_session()
    link = s.get(EventVolunteer, link_id)
    if link is None or link.event_id != event_id:
        return jsonify({"error": "Not found"}), 404
    payload = json_body()
    errors = validate_volunteer_link_patch(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        update_volunteer_link(s, link, payload, g.current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(link.to_dict())


@bp.delete("/events/<int:event_id>/volunteers")
@require_event_access("update")
def event_volunteers_remove(event_id: int):
    s = db_session()
    volunteer_id, err = _id_from(request.args.get("volunteerId"), "volunteerId query param")
    if err:
        return err
    link = find_volunteer_link(s, event_id, volunteer_id)
    if link is None:
        return jsonify({"error": "Link not found"}), 404
    unlink_volunteer(s, link, g.current_user)
    s.commit()
    return jsonify({"success": True})


# ---------- Venue partners ----------
@bp.get("/events/<int:event_id>/venues")
@require_event_access("read")
def event_venues_list(event_id: int):
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    return jsonify([l.to_dict() for l in event.venue_partners])


@bp.post("/events/<int:event_id>/venues")
@require_event_access("update")
def event_venues_add(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    payload = json_body()
    partner_id, err = _id_from(payload.get("venuePartnerId"), "venuePartnerId")
    if err:
        return err
    partner = s.get(VenuePartner, partner_id)
    if partner is None:
        return jsonify({"error": "Venue partner not found"}), 404
    if find_venue_link(s, event_id, partner_id):
        return jsonify({"error": "Venue partner already linked to this event"}), 409

    link = link_venue_partner(s, event, partner, g.current_user)
    s.commit()
    return jsonify(link.to_dict()), 201


@bp.patch("/events/<int:event_id>/venues/<int:link_id>")
@require_event_access("update")
def event_venues_patch(event_id: int, link_id: int):
    s = db_session()
    link = s.get(EventVenuePartner, link_id)
    if link is None or link.event_id != event_id:
        return jsonify({"error": "Not found"}), 404
    payload = json_body()
    errors = validate_venue_link_patch(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    force = request.args.get("force") == "true"
    try:
        confirmed = update_venue_link(s, link.event, link, payload, g.current_user, force=force)
    except VenueConflict as e:
        return jsonify(e.to_dict()), 409
    s.commit()

    if confirmed:
        send_venue_confirmed_email(s, link.id, event_id)
    return jsonify(link.to_dict())


@bp.delete("/events/<int:event_id>/venues")
@require_event_access("update")
def event_venues_remove(event_id: int):
    s = db_session()
    event, err = _get_event_or_404(event_id)
    if err:
        return err
    partner_id, err = _id_from(request.args.get("venuePartnerId"), "venuePartnerId query param")
    if err:
        return err
    link = find_venue_link(s, event_id, partner_id)
    if link is None:
        return jsonify({"error": "Link not found"}), 404
    unlink_venue_partner(s, event, link, g.current_user)
    s.commit()
    return jsonify({"success": True})
