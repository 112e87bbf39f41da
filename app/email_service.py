"""
Email Service using Resend or an SMTP relay
Provides email functionality using MJML templates for responsive design
"""

import logging
import smtplib
import ssl
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import (
    EMAIL_FROM_ADDRESS,
    MAIL_HOST,
    MAIL_PASSWORD,
    MAIL_PORT,
    MAIL_USE_TLS,
    MAIL_USER,
    RESEND_API_KEY,
)
from .email_templates import (
    DEFAULT_PLATFORM_NAME,
    admin_reply_template,
    payment_failed_template,
    ticket_created_template,
    ticket_resolved_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def send_via_smtp(
    to: list[str],
    subject: str,
    html_content: str,
    from_address: str,
) -> dict:
    """Send email via the configured SMTP relay"""
    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_address
        msg["To"] = ", ".join(to)
        msg.attach(MIMEText(html_content, "html"))

        if MAIL_PORT == 465:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(MAIL_HOST, MAIL_PORT, context=context, timeout=30)
        else:
            server = smtplib.SMTP(MAIL_HOST, MAIL_PORT, timeout=30)
            if MAIL_USE_TLS:
                context = ssl.create_default_context()
                server.starttls(context=context)

        try:
            if MAIL_USER:
                server.login(MAIL_USER, MAIL_PASSWORD or "")
            server.sendmail(from_address.split("<")[-1].rstrip(">"), to, msg.as_string())
        finally:
            server.quit()

        logger.info(f"✅ SMTP email sent successfully via {MAIL_HOST}")
        return {"id": f"smtp-{datetime.utcnow().timestamp()}", "success": True}

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ SMTP send failed: {e}")
        raise Exception(f"SMTP failed: {str(e)}") from e


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # Recent releases return an object with html/errors, older ones a dict
        html = result["html"] if isinstance(result, dict) else getattr(result, "html", result)
        errors = result.get("errors") if isinstance(result, dict) else getattr(result, "errors", None)
        if errors:
            logger.warning(f"MJML compilation warnings: {errors}")
        return str(html)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email using the SMTP relay (if configured) or Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if MAIL_HOST:
        logger.info(f"📧 Sending email via SMTP: {MAIL_HOST}")
        return send_via_smtp(recipients, subject, html_content, sender)

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing and no MAIL_HOST")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


# ============================================
# Pre-built emails for support and billing events
# ============================================


async def send_ticket_created_email(
    to: str,
    user_name: str,
    ticket_id: str,
    subject: str,
    message: str,
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> dict:
    """Confirm a new support ticket to its owner"""
    mjml_content = ticket_created_template(user_name, ticket_id, subject, message, platform_name)
    return await send_email(
        to=to,
        subject=f"Support Ticket Created: {subject} - {platform_name}",
        mjml_content=mjml_content,
    )


async def send_admin_reply_email(
    to: str,
    user_name: str,
    ticket_id: str,
    subject: str,
    reply: str,
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> dict:
    """Tell the ticket owner that support replied"""
    mjml_content = admin_reply_template(user_name, ticket_id, subject, reply, platform_name)
    return await send_email(
        to=to,
        subject=f"Re: {subject} - {platform_name} Support",
        mjml_content=mjml_content,
    )


async def send_ticket_resolved_email(
    to: str,
    user_name: str,
    ticket_id: str,
    subject: str,
    resolution_note: Optional[str],
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> dict:
    mjml_content = ticket_resolved_template(
        user_name, ticket_id, subject, resolution_note, platform_name
    )
    return await send_email(
        to=to,
        subject=f"Ticket Resolved: {subject} - {platform_name}",
        mjml_content=mjml_content,
    )


async def send_payment_failed_email(
    to: str,
    user_name: str,
    amount: Optional[float],
    currency: str,
    plan_name: Optional[str],
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> dict:
    mjml_content = payment_failed_template(user_name, amount, currency, plan_name, platform_name)
    return await send_email(
        to=to,
        subject=f"Payment Failed - {platform_name}",
        mjml_content=mjml_content,
    )
