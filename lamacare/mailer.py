import logging

import resend
from flask import current_app

from .errors import InternalError

logger = logging.getLogger(__name__)

RESET_TEMPLATE = """
<p>You requested to reset your password.</p>
<p>Click <a href="{link}">here</a> to reset. Link expires in {minutes} minutes.</p>
"""


def send_email(to: str, subject: str, html: str) -> str | None:
    """Send through Resend. Returns the provider message id, or None when mail is disabled."""
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        logger.warning("RESEND_API_KEY not set, skipping email %r to %s", subject, to)
        return None

    resend.api_key = api_key
    try:
        response = resend.Emails.send(
            {
                "from": current_app.config["MAIL_FROM"],
                "to": [to],
                "subject": subject,
                "html": html,
            }
        )
    except Exception as exc:
        logger.exception("email delivery to %s failed", to)
        raise InternalError("cannot send email") from exc

    message_id = response.get("id") if isinstance(response, dict) else None
    logger.info("email %r sent to %s (%s)", subject, to, message_id)
    return message_id


def send_password_reset(to: str, link: str) -> str | None:
    minutes = current_app.config.get("RESET_TOKEN_MINUTES", 15)
    return send_email(
        to, "Password Reset Link", RESET_TEMPLATE.format(link=link, minutes=minutes)
    )
