"""Email notifications for reviewer decisions.

Delivery is fire-and-forget: messages are handed to a Celery task and any
failure is logged without affecting the caller.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from sqlalchemy.ext.asyncio import AsyncSession

from content_sync.config import settings
from content_sync.models.queue import CentralQueueEntry
from content_sync.models.site import Site
from content_sync.models.user import User
from content_sync.repositories import user_repository

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> bool:
    """Send one message through the configured transport. Returns True on success."""
    if settings.EMAIL_TRANSPORT != "smtp":
        logger.info("Email (%s transport) to %s: %s", settings.EMAIL_TRANSPORT, to_email, subject)
        return True

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    try:
        if settings.SMTP_USE_SSL:
            server = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
        else:
            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
        with server:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.SMTP_FROM, [to_email], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send email to %s: %s", to_email, exc)
        return False
    return True


async def rejection_recipients(
    db: AsyncSession, site: Site, central: Site, entry: CentralQueueEntry | None,
) -> list[str]:
    """Author of the change, both site admins and any extra notify addresses, de-duplicated."""
    candidates: list[str | None] = []
    if entry is not None and entry.author_id is not None:
        authors = await user_repository.get_many(db, [str(entry.author_id)])
        candidates.extend(u.email for u in authors)
    candidates.append(site.admin_email)
    candidates.append(central.admin_email)
    candidates.extend(central.notify_emails or [])
    candidates.extend(site.notify_emails or [])

    seen: list[str] = []
    for email in candidates:
        email = (email or "").strip()
        if email and email.lower() not in {s.lower() for s in seen}:
            seen.append(email)
    return seen


def rejection_message(
    site: Site, central: Site, content_id: int, title: str, reviewer: User, reason: str,
) -> tuple[str, str, str]:
    """(subject, text body, html body) for a rejected change."""
    subject = f"{site.name} - Content Sync - Change Rejected"
    edit_url = f"{central.url.rstrip('/')}/contents/{content_id}"
    text_body = (
        f"Hello,\n\nChanges for \"{title}\" ({edit_url}) have been rejected for {site.name} "
        f"by {reviewer.display_name} with below message:\n\n{reason}\n\nThank You."
    )
    html_body = (
        f"<p>Hello,</p><p>Changes for <a href=\"{escape(edit_url)}\">{escape(title)}</a> have been rejected "
        f"for {escape(site.name)} by {escape(reviewer.display_name)} with below message:</p>"
        f"<p>{escape(reason)}</p><br>Thank You."
    )
    return subject, text_body, html_body


async def notify_rejection(
    db: AsyncSession,
    site: Site,
    central: Site,
    entry: CentralQueueEntry | None,
    content_id: int,
    title: str,
    reviewer: User,
    reason: str,
) -> int:
    """Queue one email per recipient. Returns how many were handed to the task queue."""
    from content_sync.tasks.notification_tasks import send_notification_email

    recipients = await rejection_recipients(db, site, central, entry)
    subject, text_body, html_body = rejection_message(site, central, content_id, title, reviewer, reason)

    queued = 0
    for email in recipients:
        try:
            send_notification_email.delay(email, subject, text_body, html_body)
            queued += 1
        except Exception:
            logger.warning("Could not queue rejection email to %s", email, exc_info=True)
    return queued
