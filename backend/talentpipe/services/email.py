from __future__ import annotations

import base64
import logging
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from talentpipe.core.config import settings
from talentpipe.core.paths import package_root, resolve_repo_path

logger = logging.getLogger("talentpipe.notifications")


def _gmail_client():
    scopes = ["https://www.googleapis.com/auth/gmail.send"]
    service_account_path = settings.google_application_credentials
    sender_email = settings.gmail_sender_email
    if not service_account_path or not sender_email:
        raise RuntimeError("Missing service account credentials or sender for Gmail.")
    credentials = Credentials.from_service_account_file(str(resolve_repo_path(service_account_path)), scopes=scopes)
    credentials = credentials.with_subject(sender_email)
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


def _template_path(name: str) -> Path:
    return package_root() / "templates" / "email" / f"{name}.html"


def render_template(name: str, context: dict[str, Any]) -> str:
    raw = _template_path(name).read_text(encoding="utf-8")
    return raw.format_map({k: ("" if v is None else v) for k, v in context.items()})


def build_message(*, to_emails: list[str], subject: str, html: str) -> MIMEText:
    sender = settings.gmail_sender_email
    sender_name = settings.gmail_sender_name or "Talentpipe"
    msg = MIMEText(html, "html", "utf-8")
    msg["To"] = ", ".join(to_emails)
    msg["From"] = f"{sender_name} <{sender}>"
    msg["Reply-To"] = sender
    msg["Subject"] = subject
    return msg


def send_email(
    *,
    to_emails: list[str],
    subject: str,
    template_name: str,
    context: dict[str, Any],
    email_type: str,
) -> dict[str, Any]:
    """Blocking Gmail send. Returns a status record; delivery errors are reported, not raised."""
    meta: dict[str, Any] = {
        "to": to_emails,
        "subject": subject,
        "template": template_name,
        "email_type": email_type,
    }

    if not to_emails:
        meta["status"] = "skipped"
        meta["reason"] = "missing_recipient"
        return meta

    if not settings.enable_gmail:
        meta["status"] = "skipped"
        meta["reason"] = "gmail_disabled"
        return meta

    html = render_template(template_name, context)
    msg = build_message(to_emails=to_emails, subject=subject, html=html)
    raw = base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")
    try:
        service = _gmail_client()
        service.users().messages().send(userId=settings.gmail_sender_email, body={"raw": raw}).execute()
        meta["status"] = "sent"
    except Exception as exc:  # noqa: BLE001
        meta["status"] = "failed"
        meta["error"] = str(exc)
        logger.warning("email_send_failed", extra={"email_type": email_type, "error": str(exc)})
    return meta
