from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import TYPE_CHECKING

from .settings import Settings, settings as default_settings

if TYPE_CHECKING:
    from .reporter import EventTarget

logger = logging.getLogger(__name__)


def smtp_configured(cfg: Settings) -> bool:
    return bool(
        cfg.enable_email
        and cfg.smtp_host
        and cfg.smtp_port
        and cfg.smtp_user
        and cfg.smtp_password
        and cfg.email_from
        and cfg.email_to
    )


def build_event_alert(target: "EventTarget", reason: str, message: str, cfg: Settings) -> EmailMessage:
    """Mail for a Warning event, addressed from the CJSYNC_EMAIL_* settings."""
    ref = f"{target.kind} {target.namespace}/{target.name}"
    msg = EmailMessage()
    msg["From"] = cfg.email_from
    msg["To"] = cfg.email_to
    msg["Subject"] = f"[{cfg.component}] {reason}: {ref}"
    lines = [
        f"Reason:  {reason}",
        f"Object:  {ref} ({target.api_version})",
    ]
    if target.uid:
        lines.append(f"UID:     {target.uid}")
    lines += ["", message]
    msg.set_content("\n".join(lines))
    return msg


def send_event_alert(target: "EventTarget", reason: str, message: str, cfg: Settings | None = None) -> bool:
    """Email a Warning event. Returns False when email is off or delivery failed."""
    cfg = cfg or default_settings
    if not smtp_configured(cfg):
        return False

    msg = build_event_alert(target, reason, message, cfg)
    try:
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port) as server:
            server.starttls()
            server.login(cfg.smtp_user, cfg.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send alert for %s on %s/%s", reason, target.namespace, target.name)
        return False
    return True
