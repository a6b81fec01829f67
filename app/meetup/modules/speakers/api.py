from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.speakers.models import Speaker
from app.meetup.modules.speakers.service import (
    create_speaker,
    delete_speaker,
    speaker_detail,
    speaker_row,
    update_speaker,
    validate_speaker_payload,
)
from app.meetup.rbac import require_auth, require_role
from app.meetup.utils import json_body

bp = Blueprint("speakers", __name__)


def _get_speaker_or_404(speaker_id: int):
    speaker = db_session().get(Speaker, speaker_id)
    if speaker is None:
        return None, (jsonify({"error": "Not found"}), 404)
    return speaker, None


@bp.get("/speakers")
@require_auth
def speakers_list():
    speakers = db_session().query(Speaker).order_by(Speaker.name.asc()).all()
    return jsonify([speaker_row(sp) for sp in speakers])


@bp.post("/speakers")
@require_role("EVENT_LEAD")
def speakers_create():
    s = db_session()
    payload = json_body()
    errors = validate_speaker_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    speaker = create_speaker(s, payload, g.current_user)
    s.commit()
    return jsonify(speaker.to_dict()), 201


@bp.get("/speakers/<int:speaker_id>")
@require_auth
def speakers_get(speaker_id: int):
    speaker, err = _get_speaker_or_404(speaker_id)
    if err:
        return err
    return jsonify(speaker_detail(speaker))


@bp.patch("/speakers/<int:speaker_id>")
@require_role("EVENT_LEAD")
def speakers_patch(speaker_id: int):
    s = db_session()
    speaker, err = _get_speaker_or_404(speaker_id)
    if err:
        return err
    payload = json_body()
    errors = validate_speaker_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400

    update_speaker(s, speaker, payload, g.current_user)
    s.commit()
    return jsonify(speaker_row(speaker))


@bp.delete("/speakers/<int:speaker_id>")
@require_role("EVENT_LEAD")
def speakers_delete(speaker_id: int):
    s = db_session()
    speaker, err = _get_speaker_or_404(speaker_id)
    if err:
        return err
    delete_speaker(s, speaker, g.current_user)
    s.commit()
    return jsonify({"success": True})
