"""
MJML Email Templates
All Fieldsy emails share one responsive MJML layout
"""

from datetime import datetime
from typing import Optional

from .config import FRONTEND_URL

# Fieldsy brand colors - Green/Slate color scheme
THEME = {
    "primary": "#3a6b22",
    "primary_dark": "#2d5419",
    "primary_light": "#e8f2e0",
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

LOGO_URL = f"{FRONTEND_URL}/logo/logo.png"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    is_user_email: bool = False,
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

    footer_notice = ""
    if is_user_email:
        footer_notice = """
        <mj-text align="center" font-size="12px" color="#94a3b8" padding="12px 0 0 0">
          You're receiving this because you have an account with Fieldsy.
        </mj-text>
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
        <!-- Header with Logo -->
        <mj-section background-color="#ffffff" padding="32px 20px">
          <mj-column>
            <mj-image
              src="{LOGO_URL}"
              alt="Fieldsy"
              width="140px"
              href="{FRONTEND_URL}"
              padding="0" />
          </mj-column>
        </mj-section>

        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="14px" color="#94a3b8" padding="0">
              <a href="{FRONTEND_URL}/terms" style="color: #64748b; text-decoration: none;">Terms &amp; Conditions</a>
            </mj-text>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="12px 0 0 0">
              © {datetime.utcnow().year} Fieldsy. All rights reserved.
            </mj-text>
            {footer_notice}
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    lines = "".join(
        f'<strong>{label}:</strong> {value}<br/>' for label, value in rows if value
    )
    return f"""
    <mj-text background-color="{THEME['primary_light']}" padding="16px" border-radius="8px">
      {lines}
    </mj-text>
    """


def field_claim_submitted_template(
    full_name: str,
    field_name: str,
    field_address: str,
    is_legal_owner: bool,
    documents: list[str],
    submitted_at: datetime,
) -> str:
    """Confirmation sent to whoever submits a field claim"""
    content = f"""
    <mj-text>
      Hi {full_name},
    </mj-text>

    <mj-text>
      Thanks for submitting a claim for <strong>{field_name}</strong>. Our team will review
      your documents and get back to you within 2-3 business days.
    </mj-text>

    {_detail_rows([
        ("Field", field_name),
        ("Address", field_address),
        ("Legal owner", "Yes" if is_legal_owner else "No"),
        ("Documents", str(len(documents))),
        ("Submitted", submitted_at.strftime("%d %B %Y, %H:%M")),
    ])}

    <mj-text color="{THEME['text_muted']}">
      You don't need to do anything else right now. We'll email you as soon as a decision is made.
    </mj-text>
    """

    return get_base_template(
        title="Field Claim Submitted",
        preview_text=f"We received your claim for {field_name}",
        content_sections=content,
    )


def field_claim_status_template(
    full_name: str,
    field_name: str,
    field_address: str,
    status: str,
    review_notes: Optional[str] = None,
    credentials: Optional[dict] = None,
) -> str:
    """Approved or rejected claim; approvals may carry login credentials"""
    approved = status == "APPROVED"

    if approved:
        intro = f"""
        <mj-text>
          Great news! Your claim for <strong>{field_name}</strong> has been approved and the
          field is now linked to your field owner account.
        </mj-text>
        """
    else:
        intro = f"""
        <mj-text>
          Unfortunately we were unable to approve your claim for <strong>{field_name}</strong>.
        </mj-text>
        """

    notes = ""
    if review_notes:
        notes = f"""
        <mj-text>
          <strong>Reviewer notes:</strong><br/>{review_notes}
        </mj-text>
        """

    login = ""
    if approved and credentials:
        login = f"""
        <mj-text>
          Use these details to sign in. Please change your password after your first login.
        </mj-text>
        {_detail_rows([("Email", credentials["email"]), ("Password", credentials["password"])])}
        """

    content = f"""
    <mj-text>
      Hi {full_name},
    </mj-text>
    {intro}
    {_detail_rows([("Field", field_name), ("Address", field_address)])}
    {notes}
    {login}
    """

    status_text = "Approved" if approved else "Rejected"
    return get_base_template(
        title=f"Field Claim {status_text}",
        preview_text=f"Your claim for {field_name} was {status_text.lower()}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/login" if approved else None,
        cta_label="Sign in to Fieldsy" if approved else None,
    )


def otp_template(otp: str, otp_type: str, name: Optional[str] = None) -> str:
    """One-time code for verification, email change or password reset"""
    if otp_type == "RESET_PASSWORD":
        title = "Reset Your Password"
        purpose = "reset your password"
    elif otp_type == "EMAIL_CHANGE":
        title = "Confirm Your New Email"
        purpose = "confirm your new email address"
    else:
        title = "Verify Your Email Address"
        purpose = "verify your email address"

    content = f"""
    <mj-text>
      Hi {name or "there"},
    </mj-text>

    <mj-text>
      Use the code below to {purpose}.
    </mj-text>

    <mj-text align="center" font-size="32px" font-weight="700" letter-spacing="8px"
      color="{THEME['primary_dark']}" background-color="{THEME['primary_light']}" padding="20px">
      {otp}
    </mj-text>

    <mj-text color="{THEME['text_muted']}">
      This code expires in 10 minutes. If you didn't request it, you can ignore this email.
    </mj-text>
    """

    return get_base_template(
        title=title,
        preview_text=f"Your Fieldsy code is {otp}",
        content_sections=content,
        is_user_email=True,
    )


def commission_change_template(
    owner_name: Optional[str], previous_rate: int, new_rate: int, use_default: bool
) -> str:
    if use_default:
        description = (
            f"Your commission rate has been changed to use the platform default rate of {new_rate}%."
        )
    else:
        description = f"A custom commission rate of {new_rate}% has been set for your account."

    content = f"""
    <mj-text>
      Hi {owner_name or "Field Owner"},
    </mj-text>

    <mj-text>
      {description}
    </mj-text>

    {_detail_rows([
        ("Previous rate", f"{previous_rate}%"),
        ("New rate", f"{new_rate}%"),
        ("Type", "Platform Default Rate" if use_default else "Custom Rate"),
    ])}

    <mj-text padding="0 0 0 20px">
      • The new rate applies to all your future bookings.<br/>
      • Completed bookings keep their original commission rates.<br/>
      • For a £100 booking, your earnings will be £{100 - new_rate:.2f} after the platform fee.
    </mj-text>
    """

    return get_base_template(
        title="Your Commission Rate Updated",
        preview_text=f"Your commission rate is now {new_rate}%",
        content_sections=content,
        is_user_email=True,
    )
