"""
MJML Email Templates and public HTML pages
Every interpolated value is HTML-escaped before it lands in markup
"""

from html import escape
from typing import Optional

from .config import APP_NAME

THEME = {
    "primary": "#2563eb",
    "primary_dark": "#1e3a8a",
    "background": "#f3f4f6",
    "text_primary": "#111827",
    "text_secondary": "#374151",
    "text_muted": "#6b7280",
    "border": "#e5e7eb",
    "danger": "#dc2626",
}


def _e(value: Optional[str]) -> str:
    return escape(value or "", quote=True)


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    secondary_url: Optional[str] = None,
    secondary_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails. ``title`` and ``preview_text`` must be escaped."""

    buttons = ""
    if cta_url and cta_label:
        buttons += f"""
            <mj-button href="{_e(cta_url)}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="8px 0">
              {_e(cta_label)}
            </mj-button>
        """
    if secondary_url and secondary_label:
        buttons += f"""
            <mj-button href="{_e(secondary_url)}" background-color="#ffffff" color="{THEME['text_secondary']}"
              border="1px solid {THEME['border']}" font-weight="600" border-radius="8px" padding="8px 0">
              {_e(secondary_label)}
            </mj-button>
        """

    cta_section = ""
    if buttons:
        cta_section = f"""
        <mj-section background-color="#ffffff" padding="0 40px 32px 40px">
          <mj-column>
            {buttons}
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
        <mj-section background-color="#ffffff" padding="40px 40px 16px 40px">
          <mj-column>
            <mj-text font-size="22px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#9ca3af" padding="0">
              Sent with {_e(APP_NAME)}
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _paragraph(text: str) -> str:
    return f'<mj-text padding="0 0 12px 0">{text}</mj-text>'


def _event_lines(event_name: str, date_range: str, location: Optional[str], price_text: Optional[str]) -> str:
    lines = [_paragraph(f"<strong>{_e(event_name)}</strong><br />{_e(date_range)}")]
    if location:
        lines.append(_paragraph(f"Location: {_e(location)}"))
    if price_text:
        lines.append(_paragraph(f"Price: {_e(price_text)}"))
    return "\n".join(lines)


# ============================================
# Session invitations
# ============================================


def session_invitation_template(
    client_first_name: str,
    service_provider_name: str,
    event_name: str,
    date_range: str,
    location: Optional[str],
    price_text: Optional[str],
    accept_url: str,
    decline_url: str,
) -> str:
    content = "\n".join(
        [
            _paragraph(f"Hi {_e(client_first_name)},"),
            _paragraph(f"{_e(service_provider_name)} has invited you to:"),
            _event_lines(event_name, date_range, location, price_text),
        ]
    )
    return get_base_template(
        title="You're invited!",
        preview_text=f"{_e(service_provider_name)} invited you to {_e(event_name)}",
        content_sections=content,
        cta_url=accept_url,
        cta_label="Accept",
        secondary_url=decline_url,
        secondary_label="Decline",
    )


def invitation_accepted_trainer_template(
    client_full_name: str, event_name: str, date_range: str, location: Optional[str], price_text: Optional[str]
) -> str:
    title = f"{_e(client_full_name)} accepted your invitation"
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=_event_lines(event_name, date_range, location, price_text),
    )


def invitation_accepted_client_template(
    service_provider_name: str,
    event_name: str,
    date_range: str,
    location: Optional[str],
    price_text: Optional[str],
) -> str:
    content = "\n".join(
        [
            _paragraph(f"{_e(event_name)} with {_e(service_provider_name)}"),
            _paragraph(_e(date_range)),
            _paragraph(f"Location: {_e(location)}") if location else "",
            _paragraph(f"Price: {_e(price_text)}") if price_text else "",
        ]
    )
    return get_base_template(
        title="You're booked in!",
        preview_text=f"You're booked in for {_e(event_name)}",
        content_sections=content,
    )


def invitation_declined_trainer_template(client_full_name: str, event_name: str, date_range: str) -> str:
    title = f"{_e(client_full_name)} declined your invitation"
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=_event_lines(event_name, date_range, None, None),
    )


def capacity_reached_template(
    client_full_name: str, event_name: str, date_range: str, maximum_attendance: int
) -> str:
    title = f"{_e(client_full_name)} tried to accept an invitation"
    attendees = "attendee" if maximum_attendance == 1 else "attendees"
    content = "\n".join(
        [
            _event_lines(event_name, date_range, None, None),
            _paragraph(
                f"The appointment is already at its limit of {maximum_attendance} {attendees}."
            ),
        ]
    )
    return get_base_template(title=title, preview_text=title, content_sections=content)


# ============================================
# Payments
# ============================================


def payment_request_template(
    client_first_name: str, service_provider_name: str, item_name: str, amount_text: str, pay_url: str
) -> str:
    content = "\n".join(
        [
            _paragraph(f"Hi {_e(client_first_name)},"),
            _paragraph(
                f"{_e(service_provider_name)} has requested a payment of "
                f"<strong>{_e(amount_text)}</strong> for {_e(item_name)}."
            ),
        ]
    )
    return get_base_template(
        title="Payment request",
        preview_text=f"Payment of {_e(amount_text)} requested by {_e(service_provider_name)}",
        content_sections=content,
        cta_url=pay_url,
        cta_label="Pay now",
    )


def subscription_payment_failed_template(
    service_provider_name: str, reason: Optional[str], dashboard_url: str
) -> str:
    failure = (
        f"but unfortunately it failed because:</mj-text>"
        f'<mj-text font-weight="700" padding="0 0 12px 0">{_e(reason)}'
        if reason
        else "but unfortunately it failed."
    )
    content = "\n".join(
        [
            _paragraph("Hi,"),
            _paragraph(
                "Just a quick email to let you know we tried to deduct a subscription payment out of "
                f"your account on behalf of {_e(service_provider_name)} {failure}"
            ),
            _paragraph(
                "We'll try again in another 24 hours. However if you need to update your card details "
                "or wish to resolve this before we next try, you can do it from your dashboard."
            ),
            _paragraph(f"Best Regards<br />The {_e(APP_NAME)} Team"),
        ]
    )
    return get_base_template(
        title="Subscription Payment Failed",
        preview_text=f"A subscription payment to {_e(service_provider_name)} failed",
        content_sections=content,
        cta_url=dashboard_url,
        cta_label="Go to Dashboard",
    )


# ============================================
# Client dashboard
# ============================================


def client_login_code_template(code: str) -> str:
    content = "\n".join(
        [
            _paragraph("Use this code to sign in to your client dashboard:"),
            f'<mj-text font-size="32px" font-weight="700" letter-spacing="6px" color="{THEME["text_primary"]}">'
            f"{_e(code)}</mj-text>",
            _paragraph("The code expires in 10 minutes. If you didn't ask for it you can ignore this email."),
        ]
    )
    return get_base_template(
        title="Your sign in code",
        preview_text=f"Your {_e(APP_NAME)} sign in code",
        content_sections=content,
    )


# ============================================
# Public pages (invitation links)
# ============================================


def _page(title: str, eyebrow: str, heading: Optional[str], body: str, eyebrow_color: str = "text-blue-600") -> str:
    heading_html = (
        f'<h3 class="mb-8 mt-2 text-3xl leading-8 font-bold tracking-tight text-gray-900 sm:text-4xl sm:leading-10">'
        f"{heading}</h3>"
        if heading
        else ""
    )
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link href="https://unpkg.com/tailwindcss@^1.4.6/dist/tailwind.min.css" rel="stylesheet">
  <title>{title}</title>
</head>
<body>
<div class="bg-gray-200">
  <div class="flex justify-center items-center max-w-screen-xl h-screen mx-auto text-center py-12 px-12 lg:py-16">
    <div class="bg-white p-12 rounded-lg shadow-2xl">
      <div class="text-left">
        <p class="mb-4 text-base leading-6 {eyebrow_color} font-semibold tracking-wide uppercase">{eyebrow}</p>
        {heading_html}
        {body}
      </div>
    </div>
  </div>
</div>
</body>
</html>
"""


def _contact_button(email: str) -> str:
    return (
        '<div class="mt-8 flex justify-left"><div class="inline-flex rounded-md shadow">'
        f'<a href="mailto:{_e(email)}" class="inline-flex items-center justify-center px-5 py-3 '
        'border border-transparent text-lg leading-6 font-medium rounded-md text-white bg-blue-500">'
        "Contact us</a></div></div>"
    )


def booked_page(
    event_name: Optional[str],
    date_range: str,
    price_text: Optional[str],
    location: Optional[str],
    service_provider_name: str,
) -> str:
    details = f'<span class="text-gray-900 text-2xl font-bold">{_e(event_name)}</span><br />' if event_name else ""
    details += _e(date_range)
    if price_text is not None:
        details += f", {_e(price_text)}"
    details += "<br />"
    if location:
        details += f"at : <span>{_e(location)}</span><br />"
    details += f"With : <span>{_e(service_provider_name)}</span>"
    body = (
        f'<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">{details}</p>'
        '<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">We\'re looking forward to seeing you!</p>'
    )
    return _page("You're all booked in!", "Success!", "You're booked.", body)


def declined_page() -> str:
    body = (
        '<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">'
        "Don't hesitate to reach out if you change your mind and we'll hopefully see you at the next one."
        "</p>"
    )
    return _page("We've marked you as not going", "No worries.", "We'll see you at the next one...", body)


def max_capacity_page(maximum_attendance: int, service_provider_email: str) -> str:
    clients = "client" if maximum_attendance == 1 else "clients"
    body = (
        '<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">'
        "Unfortunately we couldn't reserve your spot as the max number of "
        f"{maximum_attendance} {clients} has been reached. Please contact us to see if there are any "
        "cancellations or if you have any questions.</p>" + _contact_button(service_provider_email)
    )
    return _page(
        "This appointment is full",
        "We couldn't book you in sorry.",
        "We've reached max capacity",
        body,
        eyebrow_color="text-red-600",
    )


def event_not_found_page() -> str:
    body = (
        '<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">'
        "Don't hesitate to reach out if you think this is a mistake.</p>"
    )
    return _page(
        "Event not found",
        "Can't find this event.",
        "Looks like this event has been removed.",
        body,
        eyebrow_color="text-red-600",
    )


def invitation_expired_page(service_provider_email: str) -> str:
    body = (
        '<p class="mt-4 max-w-2xl text-xl leading-8 text-gray-600">'
        "Don't hesitate to reach out if you think this is a mistake.</p>"
        + _contact_button(service_provider_email)
    )
    return _page(
        "This invitation has expired",
        "This invitation has expired",
        None,
        body,
        eyebrow_color="text-red-600",
    )
