import pytest

import emailer
import notifications
from notifications import (
    PASSWORD_RESET_REVIEWED,
    REGISTRATION_CONFIRMED,
    TEAM_FINALIZED,
    EmailNotificationSender,
    Notification,
    dispatch_notifications,
)
from conftest import RecordingSender


def test_dispatch_keeps_going_after_a_failure(caplog):
    sender = RecordingSender(fail_kinds={TEAM_FINALIZED})
    batch = [
        Notification(kind=TEAM_FINALIZED, recipient_email="a@example.com"),
        Notification(kind=REGISTRATION_CONFIRMED, recipient_email="b@example.com"),
    ]
    assert dispatch_notifications(batch, sender) == 1
    assert [note.recipient_email for note in sender.sent] == ["b@example.com"]
    assert "team_finalized" in caplog.text


def test_email_sender_renders_templates(monkeypatch):
    outbox = []
    monkeypatch.setattr(notifications, "send_email", lambda to, subject, html, text: outbox.append((to, subject, text)))

    sender = EmailNotificationSender()
    sender.send(Notification(
        kind=TEAM_FINALIZED,
        recipient_email="mira@example.com",
        payload={
            "name": "Mira",
            "team_name": "Null Pointers",
            "leader_name": "Kabir",
            "event_name": "Hack Night",
            "members": ["Kabir", "Mira"],
            "ticket_id": "FEL-20260301-ABC123",
        },
    ))
    sender.send(Notification(
        kind=PASSWORD_RESET_REVIEWED,
        recipient_email="club@example.com",
        payload={"name": "Robotics Club", "approved": True, "new_password": "s3cretPass12"},
    ))

    [(to, _, team_text), (_, _, reset_text)] = outbox
    assert to == "mira@example.com"
    assert "FEL-20260301-ABC123" in team_text
    assert "Null Pointers" in team_text
    assert "s3cretPass12" in reset_text


def test_email_sender_rejects_unknown_kind(monkeypatch):
    monkeypatch.setattr(notifications, "send_email", lambda *args: None)
    with pytest.raises(ValueError):
        EmailNotificationSender().send(Notification(kind="carrier_pigeon", recipient_email="x@example.com"))


def test_send_email_needs_a_transport(monkeypatch):
    for key in ("SMTP_PRIMARY_HOST", "SMTP_SECONDARY_HOST"):
        monkeypatch.delenv(key, raising=False)
    with pytest.raises(RuntimeError):
        emailer.send_email("x@example.com", "Subject", "<p>hi</p>", "hi")


def test_smtp_config_from_environment(monkeypatch):
    monkeypatch.setenv("SMTP_PRIMARY_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PRIMARY_PORT", "465")
    monkeypatch.setenv("SMTP_PRIMARY_FROM", "events@example.com")
    monkeypatch.setenv("SMTP_PRIMARY_SSL", "yes")
    config = emailer.load_smtp_config("SMTP_PRIMARY")
    assert config.port == 465
    assert config.use_ssl
    assert config.use_tls

    monkeypatch.setenv("SMTP_PRIMARY_PORT", "not-a-port")
    with pytest.raises(RuntimeError):
        emailer.load_smtp_config("SMTP_PRIMARY")
