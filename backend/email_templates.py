import os
from typing import List, Optional, Tuple

FRONTEND_BASE_URL = os.environ.get("FRONTEND_BASE_URL", "")

SIGNATURE_TEXT = "Regards,\nFelicity Events Team\n"
SIGNATURE_HTML = "<p style=\"margin-bottom: 0;\">Regards,<br><strong>Felicity Events Team</strong></p>"


def _ticket_url(ticket_id: str) -> str:
    base = FRONTEND_BASE_URL.rstrip("/")
    return f"{base}/tickets/{ticket_id}" if base else ""


def _wrap_html(title: str, body: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 560px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          <h2 style="margin-top: 0;">{title}</h2>
          {body}
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          {SIGNATURE_HTML}
        </div>
      </body>
    </html>
    """


def build_registration_email(
    name: str,
    event_name: str,
    ticket_id: str,
    organizer_name: Optional[str] = None,
    start_date: Optional[str] = None,
    venue: Optional[str] = None,
    registration_fee: float = 0,
) -> Tuple[str, str, str]:
    subject = f"Registration Confirmed - {event_name}"
    organizer_label = organizer_name or "Organizer"
    venue_label = venue or "TBA"
    fee_label = f"Rs. {registration_fee:g}" if registration_fee else "Free"
    ticket_url = _ticket_url(ticket_id)
    text = (
        f"Hello {name},\n\n"
        f"Your registration for {event_name} is confirmed.\n"
        f"Ticket ID: {ticket_id}\n"
        f"Organizer: {organizer_label}\n"
        f"Starts: {start_date or 'TBA'}\n"
        f"Venue: {venue_label}\n"
        f"Fee: {fee_label}\n"
        + (f"View your ticket: {ticket_url}\n" if ticket_url else "")
        + "\nPlease carry your ticket ID to the venue.\n\n"
        + SIGNATURE_TEXT
    )
    link_html = f'<p><a href="{ticket_url}">View your ticket</a></p>' if ticket_url else ""
    body = (
        f"<p>Hello {name},</p>"
        f"<p>Your registration for <strong>{event_name}</strong> is confirmed.</p>"
        f"<p>Ticket ID: <strong>{ticket_id}</strong><br>"
        f"Organizer: {organizer_label}<br>"
        f"Starts: {start_date or 'TBA'}<br>"
        f"Venue: {venue_label}<br>"
        f"Fee: {fee_label}</p>"
        f"{link_html}"
        "<p>Please carry your ticket ID to the venue.</p>"
    )
    return subject, _wrap_html("Registration confirmed", body), text


def build_team_finalized_email(
    name: str,
    team_name: str,
    leader_name: str,
    event_name: str,
    member_names: List[str],
    ticket_id: str,
) -> Tuple[str, str, str]:
    subject = f"Team {team_name} is registered - {event_name}"
    roster_text = "\n".join(f"  - {member}" for member in member_names)
    roster_html = "".join(f"<li>{member}</li>" for member in member_names)
    text = (
        f"Hello {name},\n\n"
        f"Your team {team_name} (led by {leader_name}) has been finalized for {event_name}.\n"
        f"Members ({len(member_names)}):\n{roster_text}\n\n"
        f"Your ticket ID: {ticket_id}\n\n"
        + SIGNATURE_TEXT
    )
    body = (
        f"<p>Hello {name},</p>"
        f"<p>Your team <strong>{team_name}</strong> (led by {leader_name}) has been finalized for "
        f"<strong>{event_name}</strong>.</p>"
        f"<p>Members ({len(member_names)}):</p><ul>{roster_html}</ul>"
        f"<p>Your ticket ID: <strong>{ticket_id}</strong></p>"
    )
    return subject, _wrap_html("Team registered", body), text


def build_password_reset_status_email(
    name: str,
    approved: bool,
    new_password: Optional[str] = None,
    reason: Optional[str] = None,
) -> Tuple[str, str, str]:
    if approved:
        subject = "Your password reset request was approved"
        text = (
            f"Hello {name},\n\n"
            "An admin approved your password reset request.\n"
            f"Your new password is: {new_password}\n\n"
            "Please log in and change it as soon as possible.\n\n"
            + SIGNATURE_TEXT
        )
        body = (
            f"<p>Hello {name},</p>"
            "<p>An admin approved your password reset request.</p>"
            f"<p>Your new password is: <strong>{new_password}</strong></p>"
            "<p>Please log in and change it as soon as possible.</p>"
        )
        return subject, _wrap_html("Password reset approved", body), text

    subject = "Your password reset request was rejected"
    reason_label = reason or "No reason provided"
    text = (
        f"Hello {name},\n\n"
        "An admin rejected your password reset request.\n"
        f"Reason: {reason_label}\n\n"
        + SIGNATURE_TEXT
    )
    body = (
        f"<p>Hello {name},</p>"
        "<p>An admin rejected your password reset request.</p>"
        f"<p>Reason: {reason_label}</p>"
    )
    return subject, _wrap_html("Password reset rejected", body), text
