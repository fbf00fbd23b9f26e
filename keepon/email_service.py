"""
Email Service using Resend
Mails are written to the mail table with the transaction that produced them and
delivered afterwards by the worker (mail.send outbox task)
"""

import logging
from typing import Optional

import resend
from mjml import mjml_to_html
from sqlalchemy.orm import Session

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .models import Mail
from .shared.dates import utcnow
from .workflow.outbox import TASK_MAIL_SEND, enqueue_workflow_task

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # Result object exposes .html and .errors
        if result.errors:
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return result.html
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        return mjml_content


def queue_mail(
    db: Session,
    *,
    to_email: str,
    subject: str,
    mjml_content: str,
    from_email: str,
    from_name: Optional[str] = None,
    to_name: Optional[str] = None,
    reply_to: Optional[str] = None,
    trainer_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> Mail:
    """Store a mail and queue its delivery in the caller's transaction"""
    mail = Mail(
        trainer_id=trainer_id,
        client_id=client_id,
        from_email=from_email,
        from_name=from_name,
        to_email=to_email,
        to_name=to_name,
        reply_to=reply_to,
        subject=subject,
        html=compile_mjml_to_html(mjml_content),
    )
    db.add(mail)
    db.flush()
    enqueue_workflow_task(db, TASK_MAIL_SEND, {"mailId": mail.id}, dedupe_key=f"mail.send:{mail.id}")
    logger.info(f"📧 Queued mail '{subject}' to {to_email}")
    return mail


def _sender(mail: Mail) -> str:
    if mail.from_name:
        return f"{mail.from_name} <{mail.from_email}>"
    return EMAIL_FROM_ADDRESS


def deliver_mail(db: Session, mail_id: str) -> Optional[Mail]:
    """Send a queued mail through Resend. Already-sent mails are left alone."""
    mail = db.query(Mail).filter(Mail.id == mail_id).with_for_update().first()
    if not mail:
        logger.warning(f"⚠️ Mail {mail_id} no longer exists, nothing to send")
        return None
    if mail.sent_time or mail.skipped:
        return mail

    if not RESEND_API_KEY:
        logger.warning(f"⚠️ RESEND_API_KEY missing - skipping mail {mail.id} to {mail.to_email}")
        mail.skipped = True
        db.commit()
        return mail

    email_data = {
        "from": _sender(mail),
        "to": [mail.to_email],
        "subject": mail.subject,
        "html": mail.html,
    }
    if mail.reply_to:
        email_data["reply_to"] = mail.reply_to

    try:
        logger.info(f"📧 Sending email via Resend to: {mail.to_email}")
        response = resend.Emails.send(email_data)
    except Exception as e:
        logger.error(f"❌ Email send error to {mail.to_email}: {e}")
        raise

    mail.sent_time = utcnow()
    mail.provider_message_id = response.get("id") if isinstance(response, dict) else None
    db.commit()
    logger.info(f"✅ Email sent successfully via Resend: {mail.provider_message_id}")
    return mail
