"""
MJML Email Templates
All email templates using MJML for responsive, cross-client compatibility
"""

from typing import Optional

from .config import FRONTEND_URL
from .utils.sanitization import sanitize_string

# Calm blue/slate palette
THEME = {
    "primary": "#2563eb",
    "primary_dark": "#1d4ed8",
    "primary_light": "#dbeafe",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}

DEFAULT_PLATFORM_NAME = "Therapy Practice"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 0 40px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary_dark']}" padding="0 0 24px 0">
              {platform_name}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 32px 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you have an account with {platform_name}.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _quote_block(label: str, text: str) -> str:
    return f"""
    <mj-text color="{THEME['text_muted']}" font-size="13px" font-weight="600" padding="16px 0 4px 0">
      {label}
    </mj-text>
    <mj-text container-background-color="{THEME['background']}" padding="16px">
      {sanitize_string(text)}
    </mj-text>
    """


def ticket_created_template(
    user_name: str, ticket_id: str, subject: str, message: str, platform_name: str = DEFAULT_PLATFORM_NAME
) -> str:
    """Support ticket confirmation MJML template"""
    content = f"""
    <mj-text>
      Hi {sanitize_string(user_name)},
    </mj-text>

    <mj-text>
      We've received your support request and our team will get back to you as soon as possible.
    </mj-text>

    <mj-text>
      <strong>Ticket ID:</strong> {ticket_id}<br/>
      <strong>Subject:</strong> {sanitize_string(subject)}
    </mj-text>

    {_quote_block("Your message", message)}
    """

    return get_base_template(
        title="Support Ticket Received",
        preview_text=f"We received your request: {sanitize_string(subject)}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/support/tickets/{ticket_id}",
        cta_label="View Ticket",
        platform_name=platform_name,
    )


def admin_reply_template(
    user_name: str, ticket_id: str, subject: str, reply: str, platform_name: str = DEFAULT_PLATFORM_NAME
) -> str:
    """Admin reply notification MJML template"""
    content = f"""
    <mj-text>
      Hi {sanitize_string(user_name)},
    </mj-text>

    <mj-text>
      Our support team has replied to your ticket <strong>{sanitize_string(subject)}</strong>.
    </mj-text>

    {_quote_block("Reply from support", reply)}
    """

    return get_base_template(
        title="New Reply On Your Ticket",
        preview_text=f"Support replied: {sanitize_string(subject)}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/support/tickets/{ticket_id}",
        cta_label="View Conversation",
        platform_name=platform_name,
    )


def ticket_resolved_template(
    user_name: str,
    ticket_id: str,
    subject: str,
    resolution_note: Optional[str],
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> str:
    """Ticket resolved MJML template"""
    resolution_section = _quote_block("Resolution", resolution_note) if resolution_note else ""

    content = f"""
    <mj-text>
      Hi {sanitize_string(user_name)},
    </mj-text>

    <mj-text color="{THEME['success']}" font-weight="600">
      Your support ticket has been resolved.
    </mj-text>

    <mj-text>
      <strong>Subject:</strong> {sanitize_string(subject)}
    </mj-text>

    {resolution_section}

    <mj-text color="{THEME['text_muted']}" font-size="14px">
      If the issue comes back, just reply on the ticket and we'll pick it up again.
    </mj-text>
    """

    return get_base_template(
        title="Ticket Resolved",
        preview_text=f"Resolved: {sanitize_string(subject)}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/support/tickets/{ticket_id}",
        cta_label="View Ticket",
        platform_name=platform_name,
    )


def payment_failed_template(
    user_name: str,
    amount: Optional[float],
    currency: str,
    plan_name: Optional[str],
    platform_name: str = DEFAULT_PLATFORM_NAME,
) -> str:
    """Failed subscription payment MJML template"""
    amount_line = f"{amount:,.2f} {currency.upper()}" if amount is not None else "your subscription payment"
    plan_line = f" for the <strong>{sanitize_string(plan_name)}</strong> plan" if plan_name else ""

    content = f"""
    <mj-text>
      Hi {sanitize_string(user_name)},
    </mj-text>

    <mj-text>
      We couldn't process {amount_line}{plan_line}. Your subscription is now past due.
    </mj-text>

    <mj-text color="{THEME['danger']}" font-size="14px" font-weight="600">
      Please update your payment method to keep your account active.
    </mj-text>
    """

    return get_base_template(
        title="Payment Failed",
        preview_text="Action needed: your subscription payment failed",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/billing",
        cta_label="Update Payment Method",
        platform_name=platform_name,
    )


__all__ = [
    "THEME",
    "get_base_template",
    "ticket_created_template",
    "admin_reply_template",
    "ticket_resolved_template",
    "payment_failed_template",
]
