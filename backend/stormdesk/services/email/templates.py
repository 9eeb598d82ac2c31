"""
Email templates.

Each builder returns ``{"subject": ..., "html": ...}`` ready for
``safe_send_email(to, **content)``. Org branding (name and colours) is used
when the caller has an org; otherwise the StormDesk defaults apply.
"""
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Dict, Optional

from ...config import APP_BASE_URL


@dataclass
class Brand:
    name: str = "StormDesk"
    primary_color: str = "#0A1A2F"
    accent_color: str = "#117CFF"
    logo_url: Optional[str] = None

    @classmethod
    def from_org(cls, org) -> "Brand":
        if org is None:
            return cls()
        return cls(
            name=org.name or cls.name,
            primary_color=org.primary_color or cls.primary_color,
            accent_color=org.accent_color or cls.accent_color,
            logo_url=org.logo_url,
        )


def _button(href: str, label: str, brand: Brand) -> str:
    return (
        f'<div style="text-align: center; margin: 32px 0;">'
        f'<a href="{escape(href)}" style="display: inline-block; padding: 14px 32px; '
        f'background-color: {brand.accent_color}; color: #ffffff; text-decoration: none; '
        f'border-radius: 8px; font-weight: 600;">{escape(label)}</a></div>'
    )


def _layout(heading: str, body_html: str, brand: Brand) -> str:
    logo = ""
    if brand.logo_url:
        logo = f'<img src="{escape(brand.logo_url)}" alt="{escape(brand.name)}" style="max-height: 48px; margin-bottom: 12px;"><br>'
    year = datetime.utcnow().year
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="margin: 0; padding: 0; background-color: #f8fafc; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="max-width: 600px; margin: 40px auto; background-color: #ffffff; border-radius: 16px; overflow: hidden;">
    <tr>
      <td style="padding: 32px; text-align: center; background: {brand.primary_color};">
        {logo}<h1 style="margin: 0; color: #ffffff; font-size: 24px;">{escape(heading)}</h1>
      </td>
    </tr>
    <tr>
      <td style="padding: 40px 32px; color: #334155; font-size: 16px; line-height: 1.6;">
        {body_html}
      </td>
    </tr>
    <tr>
      <td style="padding: 24px 32px; background-color: #f8fafc; text-align: center;">
        <p style="margin: 0; color: #64748b; font-size: 12px;">&copy; {year} {escape(brand.name)}. All rights reserved.</p>
      </td>
    </tr>
  </table>
</body>
</html>"""


def welcome_email(user_name: str, brand: Optional[Brand] = None) -> Dict[str, str]:
    brand = brand or Brand()
    body = (
        f"<p>Hi {escape(user_name)},</p>"
        f"<p>Welcome to {escape(brand.name)}! Your account is ready. Start by:</p>"
        "<ul>"
        "<li>Adding your first claim and property</li>"
        "<li>Importing contacts and leads</li>"
        "<li>Scheduling crews on the job calendar</li>"
        "</ul>"
        + _button(f"{APP_BASE_URL}/dashboard", "Go to Dashboard", brand)
    )
    return {
        "subject": f"Welcome to {brand.name}!",
        "html": _layout(f"Welcome to {brand.name}!", body, brand),
    }


def trial_ending_email(user_name: str, days_remaining: int, brand: Optional[Brand] = None) -> Dict[str, str]:
    brand = brand or Brand()
    unit = "day" if days_remaining == 1 else "days"
    body = (
        f"<p>Hi {escape(user_name)},</p>"
        f"<p>Your trial ends in <strong>{days_remaining} {unit}</strong>.</p>"
        "<p>To keep your claims, crews and estimates running, choose a plan that fits your business.</p>"
        + _button(f"{APP_BASE_URL}/settings/billing", "View Plans", brand)
    )
    return {
        "subject": f"Your trial ends in {days_remaining} {unit}",
        "html": _layout("Your trial is ending", body, brand),
    }


def payment_failed_email(user_name: str, amount: float, brand: Optional[Brand] = None) -> Dict[str, str]:
    brand = brand or Brand()
    body = (
        f"<p>Hi {escape(user_name)},</p>"
        f"<p>We couldn't process your payment of <strong>${amount:,.2f}</strong>.</p>"
        "<p>Please update your payment method to avoid any interruption to your account.</p>"
        + _button(f"{APP_BASE_URL}/settings/billing", "Update Payment Method", brand)
    )
    return {
        "subject": "Payment failed - action required",
        "html": _layout("Payment failed", body, brand),
    }


def notification_email(
    title: str,
    message: Optional[str] = None,
    link: Optional[str] = None,
    brand: Optional[Brand] = None,
) -> Dict[str, str]:
    brand = brand or Brand()
    body = f"<p>{escape(message or title)}</p>"
    if link:
        href = link if link.startswith("http") else f"{APP_BASE_URL}{link}"
        body += _button(href, "Open in StormDesk", brand)
    return {"subject": title, "html": _layout(title, body, brand)}
