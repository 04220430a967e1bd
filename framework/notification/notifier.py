from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional
from email.message import EmailMessage

import aiosmtplib

from framework.config import settings
from framework.logging.logger import get_logger

logger = get_logger("notifier")


def format_date(value: datetime) -> str:
    """Long date used in user-facing messages, e.g. 'March 5, 2026'."""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


async def _send_email(email_to: Optional[str], subject: str, body: str, context: str) -> bool:
    """
    Send one email through the configured driver.
    - email_to empty: do not send, return False
    - NOTIFICATION_DRIVER=mock: log only, return True
    - NOTIFICATION_DRIVER=email: send via SMTP
    Never raises; callers treat False as "not delivered".
    """
    if not email_to:
        return False

    driver = (settings.NOTIFICATION_DRIVER or "mock").lower()

    if driver == "mock":
        logger.info(f"[MOCK] send email to={email_to} subject={subject!r} {context}")
        return True

    if driver != "email":
        logger.warning(f"Unsupported NOTIFICATION_DRIVER={settings.NOTIFICATION_DRIVER!r}, skip sending")
        return False

    if not settings.SMTP_HOST or not settings.SMTP_USER or not settings.SMTP_PASSWORD:
        logger.warning("SMTP not configured (SMTP_HOST/SMTP_USER/SMTP_PASSWORD missing), skip sending")
        return False

    msg = EmailMessage()
    msg["From"] = settings.SMTP_USER
    msg["To"] = email_to
    msg["Subject"] = f"[{settings.APP_NAME}] {subject}"
    msg.set_content(body)

    try:
        await asyncio.wait_for(
            aiosmtplib.send(
                msg,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT or 587,
                username=settings.SMTP_USER,
                password=settings.SMTP_PASSWORD,
                start_tls=True,
                timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
            ),
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
        logger.info(f"Email sent to={email_to} {context}")
        return True
    except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
        logger.warning(f"Failed to send email to={email_to} {context}: {e!r}")
        return False


async def notify_account_deletion_requested(
    email_to: Optional[str],
    deletion_date: datetime,
    user_id: Optional[int] = None,
) -> bool:
    date_label = format_date(deletion_date)
    body = "\n".join([
        "We received a request to delete your account.",
        "",
        f"Your account and all of its models will be permanently deleted on {date_label}.",
        "Until then your library is read-only. You can cancel the deletion at any time before that date:",
        f"{settings.WEB_URL}/settings/account",
    ]) + "\n"
    return await _send_email(
        email_to,
        "Your account is scheduled for deletion",
        body,
        context=f"event=account_deletion_requested user_id={user_id}",
    )


async def notify_account_deletion_completed(
    email_to: Optional[str],
    deletion_date: datetime,
    user_id: Optional[int] = None,
) -> bool:
    body = "\n".join([
        f"As requested, your account was deleted on {format_date(deletion_date)}.",
        "",
        "All of your workspaces, models and files have been removed.",
        "This is the last email you will receive from us.",
    ]) + "\n"
    return await _send_email(
        email_to,
        "Your account has been deleted",
        body,
        context=f"event=account_deletion_completed user_id={user_id}",
    )


async def notify_grace_period_started(
    email_to: Optional[str],
    tenant_name: str,
    grace_deadline: datetime,
    retention_deadline: datetime,
    tenant_id: Optional[int] = None,
) -> bool:
    body = "\n".join([
        f"The workspace \"{tenant_name}\" is over the limits of its plan.",
        "",
        f"Uploads are paused. Remove models or upgrade before {format_date(grace_deadline)}.",
        f"If the workspace is still over its limits on {format_date(retention_deadline)}, "
        "the oldest models will be deleted until it fits.",
        f"{settings.WEB_URL}/settings/billing",
    ]) + "\n"
    return await _send_email(
        email_to,
        "Your workspace is over its plan limits",
        body,
        context=f"event=grace_period_started tenant_id={tenant_id}",
    )
