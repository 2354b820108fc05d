"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from datetime import datetime
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import ADMIN_NOTIFICATION_EMAIL, EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    commission_change_template,
    field_claim_status_template,
    field_claim_submitted_template,
    otp_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailServiceError(Exception):
    """Raised when an email cannot be compiled or delivered"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns an object/dict with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        if html is not None:
            if getattr(result, "errors", None):
                logger.warning(f"MJML compilation warnings: {result.errors}")
            return html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailServiceError(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
    cc: Optional[list[str]] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address
        cc: Optional copied recipients

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailServiceError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        email_data = {
            "from": from_address or EMAIL_FROM_ADDRESS,
            "to": recipients,
            "subject": subject,
            "html": html_content,
        }
        if cc:
            email_data["cc"] = cc

        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailServiceError(f"Failed to send email: {str(e)}") from e


# ============================================
# Fieldsy emails
# ============================================


async def send_field_claim_email(
    to: str,
    full_name: str,
    field_name: str,
    field_address: str,
    is_legal_owner: bool,
    documents: list[str],
    submitted_at: Optional[datetime] = None,
) -> dict:
    """Claim confirmation to the claimer; the admin inbox is copied"""
    mjml_content = field_claim_submitted_template(
        full_name=full_name,
        field_name=field_name,
        field_address=field_address,
        is_legal_owner=is_legal_owner,
        documents=documents,
        submitted_at=submitted_at or datetime.utcnow(),
    )
    return await send_email(
        to=to,
        subject="Field Claim Submitted - Fieldsy",
        mjml_content=mjml_content,
        cc=[ADMIN_NOTIFICATION_EMAIL] if ADMIN_NOTIFICATION_EMAIL else None,
    )


async def send_field_claim_status_email(
    to: str,
    full_name: str,
    field_name: str,
    field_address: str,
    status: str,
    review_notes: Optional[str] = None,
    credentials: Optional[dict] = None,
) -> dict:
    status_text = "Approved" if status == "APPROVED" else "Rejected"
    mjml_content = field_claim_status_template(
        full_name=full_name,
        field_name=field_name,
        field_address=field_address,
        status=status,
        review_notes=review_notes,
        credentials=credentials,
    )
    logger.info(f"📧 Claim {status_text.lower()} email to {to} (credentials: {bool(credentials)})")
    return await send_email(
        to=to,
        subject=f"Field Claim {status_text} - Fieldsy",
        mjml_content=mjml_content,
    )


async def send_otp_email(to: str, otp: str, otp_type: str, name: Optional[str] = None) -> dict:
    """Send a one-time code"""
    if otp_type == "RESET_PASSWORD":
        subject = "Password Reset - Fieldsy"
    elif otp_type == "EMAIL_CHANGE":
        subject = "Confirm Your New Email - Fieldsy"
    else:
        subject = "Email Verification - Fieldsy"
    return await send_email(to=to, subject=subject, mjml_content=otp_template(otp, otp_type, name))


async def send_commission_change_email(
    to: str,
    owner_name: Optional[str],
    previous_rate: int,
    new_rate: int,
    use_default: bool = False,
) -> dict:
    mjml_content = commission_change_template(owner_name, previous_rate, new_rate, use_default)
    return await send_email(
        to=to,
        subject="Your Commission Rate Has Been Updated - Fieldsy",
        mjml_content=mjml_content,
    )
