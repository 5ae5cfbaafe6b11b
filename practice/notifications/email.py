import logging
from typing import Any, Mapping, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def send_email(
    *,
    to: str,
    subject: str,
    template: str,
    template_data: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    Render ``template`` with ``template_data`` and send it to ``to``.
    Returns True when the backend accepted the message, False otherwise. Never raises.
    """
    recipient = (to or '').strip()
    if not recipient:
        logger.info("Email skip: no recipient for %r", subject)
        return False
    try:
        body = render_to_string(template, dict(template_data or {}))
        delivered = send_mail(
            subject=subject[:200],
            message=body,
            from_email=getattr(settings, 'DEFAULT_FROM_EMAIL', None),
            recipient_list=[recipient],
            fail_silently=False,
        )
    except Exception as exc:
        logger.exception("Email send error to %s: %s", recipient, exc)
        return False
    if not delivered:
        logger.warning("Email backend did not deliver %r to %s", subject, recipient)
        return False
    return True
