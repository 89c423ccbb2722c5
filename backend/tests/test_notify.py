import email
import smtplib
from dataclasses import replace

import pytest

from jobhunter.core.config import get_runtime_config
from jobhunter.services import notify
from jobhunter.services.notify import (
    EmailNotifier,
    LogNotifier,
    build_html_body,
    build_notifier,
    build_subject,
)

USER = {"id": "alice", "username": "alice", "email": "alice@example.com", "first_name": "Alice"}
QUERY = {"id": 7, "query": "nurse", "location": "Austin", "distance": 25}


class FakeSMTP:
    instances = []

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def sendmail(self, from_addr, to_addrs, msg):
        self.calls.append(("sendmail", from_addr, tuple(to_addrs), msg))


class RefusingSMTP(FakeSMTP):
    def login(self, user, password):
        raise smtplib.SMTPAuthenticationError(535, b"bad credentials")


@pytest.fixture
def smtp_cfg():
    return replace(
        get_runtime_config(),
        email_enabled=True,
        smtp_host="smtp.test",
        smtp_port=2525,
        smtp_user="bot@example.com",
        smtp_password="secret",
        from_email="bot@example.com",
        app_url="https://jobs.test",
    )


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []


def test_subject_pluralises():
    assert build_subject(QUERY, 1) == "1 New Job Found: nurse"
    assert build_subject(QUERY, 3) == "3 New Jobs Found: nurse"


def test_html_body_escapes_user_supplied_text():
    body = build_html_body({"first_name": "<b>Eve</b>"}, {"query": "a&b", "location": "x", "distance": 5}, 2, "https://jobs.test")

    assert "&lt;b&gt;Eve&lt;/b&gt;" in body
    assert "a&amp;b" in body
    assert "<b>Eve</b>" not in body


def test_email_is_sent_on_background_worker(monkeypatch, smtp_cfg):
    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)
    notifier = EmailNotifier(smtp_cfg)

    notifier.notify(USER, QUERY, 2)
    notifier.shutdown(wait=True)

    [server] = FakeSMTP.instances
    assert (server.host, server.port) == ("smtp.test", 2525)
    assert server.calls[0] == "starttls"
    assert server.calls[1] == ("login", "bot@example.com")
    _, from_addr, to_addrs, msg = server.calls[2]
    assert from_addr == "bot@example.com"
    assert to_addrs == ("alice@example.com",)
    assert "2 New Jobs Found: nurse" in msg
    parsed = email.message_from_string(msg)
    plain = parsed.get_payload(0).get_payload(decode=True).decode("utf-8")
    assert "View jobs: https://jobs.test" in plain


def test_user_without_email_is_skipped(monkeypatch, smtp_cfg):
    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)
    notifier = EmailNotifier(smtp_cfg)

    notifier.notify({**USER, "email": ""}, QUERY, 2)
    notifier.shutdown(wait=True)

    assert FakeSMTP.instances == []


def test_smtp_failure_is_logged_not_raised(monkeypatch, smtp_cfg, caplog):
    monkeypatch.setattr(notify.smtplib, "SMTP", RefusingSMTP)

    assert EmailNotifier(smtp_cfg)._send(USER, QUERY, 1) is False
    assert any("Failed to send email" in r.getMessage() for r in caplog.records)


def test_missing_smtp_settings_skip_send(monkeypatch, smtp_cfg):
    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)

    assert EmailNotifier(replace(smtp_cfg, smtp_password=""))._send(USER, QUERY, 1) is False
    assert FakeSMTP.instances == []


def test_build_notifier_follows_email_flag(smtp_cfg):
    assert isinstance(build_notifier(replace(smtp_cfg, email_enabled=False)), LogNotifier)
    sender = build_notifier(smtp_cfg)
    assert isinstance(sender, EmailNotifier)
    sender.shutdown()


def test_unexpected_worker_error_is_logged(monkeypatch, smtp_cfg, caplog):
    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)
    notifier = EmailNotifier(smtp_cfg)

    def broken(*args):
        raise KeyError("email")

    monkeypatch.setattr(notifier, "_build_message", broken)

    notifier.notify(USER, QUERY, 1)
    notifier.shutdown(wait=True)

    [record] = [r for r in caplog.records if r.getMessage() == "Notification worker crashed"]
    assert record.exc_info[0] is KeyError
    assert FakeSMTP.instances == []
