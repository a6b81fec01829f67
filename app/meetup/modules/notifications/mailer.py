"""
SMTP email delivery.

Every send is recorded in email_logs (PENDING -> SENT | FAILED) using its own short
session, so the log survives even if the caller's transaction rolls back. When SMTP is
not configured nothing is sent and nothing is logged.
"""
from __future__ import annotations

import html as html_lib
import logging
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from flask import current_app, render_template

from app.meetup.db import session_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes | str
    content_type: str = "application/octet-stream"
    cid: str | None = None  # inline image referenced as cid:<cid> in the HTML


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def is_email_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get("SMTP_HOST") and cfg.get("SMTP_USER") and cfg.get("SMTP_PASS"))


def _connect() -> smtplib.SMTP:
    cfg = current_app.config
    host = cfg["SMTP_HOST"]
    port = int(cfg.get("SMTP_PORT") or 587)
    if port == 465:
        smtp: smtplib.SMTP = smtplib.SMTP_SSL(host, port, timeout=30)
    else:
        smtp = smtplib.SMTP(host, port, timeout=30)
        smtp.ehlo()
        smtp.starttls()
        smtp.ehlo()
    smtp.login(cfg["SMTP_USER"], cfg["SMTP_PASS"])
    return smtp


def verify_connection() -> tuple[bool, str | None]:
    if not is_email_configured():
        return False, "SMTP not configured"
    try:
        smtp = _connect()
        smtp.noop()
        smtp.quit()
        return True, None
    except (smtplib.SMTPException, OSError) as e:
        return False, str(e)


def html_to_text(html: str) -> str:
    text = re.sub(r"(?is)<(head|style|script)\b.*?</\1>", "", html)
    text = re.sub(r"(?i)<br\s*/?>", "\n", text)
    text = re.sub(r"(?i)</(p|div|tr|h[1-6]|li)>", "\n", text)
    text = re.sub(r"(?i)<a\s[^>]*href=\"([^\"]+)\"[^>]*>(.*?)</a>", r"\2 (\1)", text)
    text = re.sub(r"<[^>]+>", "", text)
    text = html_lib.unescape(text)
    lines = [ln.strip() for ln in text.splitlines()]
    out: list[str] = []
    for ln in lines:
        if ln or (out and out[-1]):
            out.append(ln)
    return "\n".join(out).strip()


def _as_list(value: str | list[str] | None) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [v for v in value if v]


def build_message(
    *,
    sender: str,
    to: list[str],
    subject: str,
    html: str,
    text: str | None,
    cc: list[str],
    attachments: list[Attachment],
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    msg["Subject"] = subject
    msg["Message-ID"] = make_msgid(domain="meetup-manager")
    msg.set_content(text or html_to_text(html))
    msg.add_alternative(html, subtype="html")

    html_part = msg.get_payload()[1]
    for att in attachments:
        if att.cid:
            maintype, _, subtype = att.content_type.partition("/")
            data = att.content.encode() if isinstance(att.content, str) else att.content
            html_part.add_related(data, maintype=maintype, subtype=subtype, cid=f"<{att.cid}>", filename=att.filename)

    for att in attachments:
        if att.cid:
            continue
        maintype, _, subtype = att.content_type.partition("/")
        if isinstance(att.content, str) and maintype == "text":
            msg.add_attachment(att.content, subtype=subtype, filename=att.filename)
        else:
            data = att.content.encode() if isinstance(att.content, str) else att.content
            msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=att.filename)
    return msg


def send_email(
    to: str | list[str],
    subject: str,
    html: str,
    *,
    template: str,
    text: str | None = None,
    cc: str | list[str] | None = None,
    attachments: list[Attachment] | None = None,
    from_name: str | None = None,
) -> SendResult:
    recipients = _as_list(to)
    joined = ", ".join(recipients)
    if not is_email_configured():
        logger.warning("SMTP not configured; skipping email to %s", joined)
        return SendResult(False, error="SMTP not configured")

    app = current_app._get_current_object()  # type: ignore[attr-defined]
    log_id: int | None = None
    try:
        from app.meetup.modules.notifications.models import EmailLog

        with session_scope(app) as s:
            log = EmailLog(to=joined, subject=subject[:512], template=template, status="PENDING")
            s.add(log)
            s.flush()
            log_id = log.id
    except Exception:
        logger.exception("Failed to create email log (template=%s)", template)

    cfg = app.config
    if from_name and cfg.get("SMTP_USER"):
        sender = formataddr((from_name, cfg["SMTP_USER"]))
    else:
        sender = cfg.get("SMTP_FROM") or cfg["SMTP_USER"]

    try:
        msg = build_message(
            sender=sender,
            to=recipients,
            subject=subject,
            html=html,
            text=text,
            cc=_as_list(cc),
            attachments=attachments or [],
        )
        smtp = _connect()
        try:
            smtp.send_message(msg)
        finally:
            smtp.quit()
    except (smtplib.SMTPException, OSError, ValueError) as e:
        logger.error("Email send failed (template=%s to=%s): %s", template, joined, e)
        _finish_log(app, log_id, status="FAILED", error=str(e))
        return SendResult(False, error=str(e))

    _finish_log(app, log_id, status="SENT")
    return SendResult(True, message_id=msg["Message-ID"])


def _finish_log(app, log_id: int | None, *, status: str, error: str | None = None) -> None:
    if log_id is None:
        return
    from app.meetup.modules.notifications.models import EmailLog

    try:
        with session_scope(app) as s:
            log = s.get(EmailLog, log_id)
            if log is None:
                return
            log.status = status
            log.error = error
            if status == "SENT":
                log.sent_at = datetime.utcnow()
    except Exception:
        logger.exception("Failed to update email log %s", log_id)


def logo_attachment(data_uri: str | None, cid: str = "logo") -> Attachment | None:
    from app.meetup.modules.settings.service import decode_data_uri

    decoded = decode_data_uri(data_uri)
    if decoded is None:
        return None
    content_type, data = decoded
    ext = content_type.split("/", 1)[1].replace("+xml", "")
    return Attachment(filename=f"logo.{ext}", content=data, content_type=content_type, cid=cid)


def render_and_send(
    to: str | list[str],
    subject: str,
    template: str,
    context: dict,
    *,
    attachments: list[Attachment] | None = None,
    cc: str | list[str] | None = None,
) -> SendResult:
    """
    Render templates/emails/<template>.html and send it.
    Adds the meetup name as sender display name and embeds the light logo when one is set.
    """
    if not is_email_configured():
        return SendResult(False, error="SMTP not configured")

    from app.meetup.modules.settings.service import get_setting_values

    try:
        with session_scope(current_app._get_current_object()) as s:  # type: ignore[attr-defined]
            branding = get_setting_values(s, ("meetup_name", "logo_light"))
        meetup_name = branding.get("meetup_name") or "Meetup Manager"
        logo = logo_attachment(branding.get("logo_light"))
        all_attachments = list(attachments or [])
        if logo:
            all_attachments.append(logo)
        html = render_template(
            f"emails/{template}.html",
            meetup_name=meetup_name,
            app_url=current_app.config.get("APP_URL"),
            logo_cid=logo.cid if logo else None,
            **context,
        )
    except Exception as e:
        logger.exception("Email render failed (template=%s)", template)
        return SendResult(False, error=str(e))

    return send_email(
        to,
        subject,
        html,
        template=template,
        cc=cc,
        attachments=all_attachments,
        from_name=meetup_name,
    )
