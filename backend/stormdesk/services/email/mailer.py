"""
Resend delivery for transactional email.

In development nothing leaves the process: the message is logged and a
placeholder id is returned.
"""
import logging
from typing import Any, Dict, List, Optional, Union

import resend

from ...config import EMAIL_FROM, RESEND_API_KEY, is_development
from ...errors import IntegrationError

logger = logging.getLogger(__name__)

DEV_MESSAGE_ID = "dev-mode"


def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    reply_to: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Send one email through Resend.

    Raises IntegrationError when Resend is not configured or rejects the
    message.
    """
    recipients = [to] if isinstance(to, str) else list(to)

    if is_development():
        logger.info(f"[EMAIL] To: {', '.join(recipients)}")
        logger.info(f"[EMAIL] Subject: {subject}")
        logger.debug(f"[EMAIL] Body: {html[:200]}...")
        return {"success": True, "id": DEV_MESSAGE_ID}

    if not RESEND_API_KEY:
        raise IntegrationError("RESEND_API_KEY is not set")

    resend.api_key = RESEND_API_KEY
    params = {
        "from": EMAIL_FROM,
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    if reply_to:
        params["reply_to"] = reply_to

    try:
        result = resend.Emails.send(params)
    except Exception as e:
        raise IntegrationError(f"Email send failed: {e}") from e

    message_id = result.get("id") if isinstance(result, dict) else getattr(result, "id", None)
    logger.info(f"[EMAIL] Sent '{subject}' to {', '.join(recipients)} ({message_id})")
    return {"success": True, "id": message_id}


def safe_send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    reply_to: Optional[str] = None,
) -> Dict[str, Any]:
    """Like send_email, but reports failure in the result instead of raising."""
    if not to:
        logger.error(f"[EMAIL] No recipient for '{subject}'")
        return {"success": False, "error": "No recipient"}
    try:
        return send_email(to, subject, html, reply_to=reply_to)
    except Exception as e:
        logger.exception(f"[EMAIL] Safe send failed for '{subject}'")
        return {"success": False, "error": str(e)}
