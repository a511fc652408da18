import smtplib

import pytest

from bizboost import notifications
from bizboost.errors import NotificationError
from bizboost.logging import _redact_secrets
from bizboost.notifications import EmailNotifier, redact_email


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, from_addr, to_addrs, message):
        FakeSMTP.sent.append((from_addr, to_addrs, message))


class BrokenSMTP(FakeSMTP):
    def __init__(self, host, port, timeout=None):
        raise smtplib.SMTPConnectError(421, "unavailable")


def configured_notifier():
    return EmailNotifier(smtp_host="smtp.example.com", smtp_user="mailer", smtp_password="pw",
                         from_email="noreply@example.com")


def test_dev_mode_does_not_send():
    notifier = EmailNotifier()
    assert notifier.is_configured is False
    notifier.send_verification_code("a@x.com", "alice", "123456", 10)


def test_sends_code(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)

    configured_notifier().send_verification_code("a@x.com", "alice", "123456", 10)

    from_addr, to_addrs, message = FakeSMTP.sent[0]
    assert from_addr == "noreply@example.com"
    assert to_addrs == ["a@x.com"]
    assert "123456" in message


def test_send_failure_raises(monkeypatch):
    monkeypatch.setattr(notifications.smtplib, "SMTP", BrokenSMTP)

    with pytest.raises(NotificationError):
        configured_notifier().send_verification_code("a@x.com", "alice", "123456", 10)


def test_redact_email():
    assert redact_email("alice@example.com") == "al***@example.com"
    assert redact_email("nonsense") == "redacted"


def test_log_processor_masks_secrets():
    event = _redact_secrets(None, "info", {"event": "x", "session_token": "abc", "dev_code": "123456", "user_id": 3})
    assert event["session_token"] == "***"
    assert event["dev_code"] == "***"
    assert event["user_id"] == 3
