"""Unit tests for core/mailer.py -- templates, LogMailer, SmtpMailer, build_mailer().

SMTP is never contacted: smtplib.SMTP is replaced with a MagicMock.
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from core import mailer as mailer_module
from core.config import Settings
from core.mailer import TEMPLATES, LogMailer, SmtpMailer, build_mailer, render

SECRET = "x" * 32


def test_render_fills_context() -> None:
    subject, body = render("signup", {"code": "004217", "ttl_minutes": 10})
    assert subject == "Verify your Priorly account"
    assert "004217" in body
    assert "10 minutes" in body


def test_render_unknown_template() -> None:
    with pytest.raises(KeyError):
        render("no-such-template", {})


def test_every_code_template_mentions_the_code() -> None:
    for template_id in ("signup", "forgot-password", "change-email"):
        assert "{code}" in TEMPLATES[template_id][1]


def test_log_mailer_logs_rendered_message(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="priorly.mail"):
        LogMailer().send("ada@example.com", "signup", {"code": "123456", "ttl_minutes": 10})
    assert "ada@example.com" in caplog.text
    assert "123456" in caplog.text


def test_log_mailer_swallows_bad_context(caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="priorly.mail"):
        LogMailer().send("ada@example.com", "signup", {})
    assert "Could not render" in caplog.text


def test_build_mailer_without_smtp_host() -> None:
    assert isinstance(build_mailer(Settings(secret_key=SECRET, smtp_host="")), LogMailer)


def test_smtp_mailer_delivers(monkeypatch) -> None:
    smtp_cls = MagicMock()
    server = smtp_cls.return_value.__enter__.return_value
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", smtp_cls)

    settings = Settings(
        secret_key=SECRET,
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_username="priorly",
        smtp_password="hunter2",
    )
    mailer = build_mailer(settings)
    assert isinstance(mailer, SmtpMailer)
    mailer.send("ada@example.com", "welcome", {"login_link": "http://localhost:3000"})
    mailer.close()  # waits for the worker thread

    smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("priorly", "hunter2")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "ada@example.com"
    assert message["Subject"] == "Welcome to Priorly!"


def test_smtp_failure_is_logged_not_raised(monkeypatch, caplog) -> None:
    smtp_cls = MagicMock(side_effect=OSError("connection refused"))
    monkeypatch.setattr(mailer_module.smtplib, "SMTP", smtp_cls)

    mailer = SmtpMailer(Settings(secret_key=SECRET, smtp_host="smtp.example.com"))
    with caplog.at_level(logging.ERROR, logger="priorly.mail"):
        mailer.send("ada@example.com", "password-changed", {})
        mailer.close()
    assert "Failed to send mail" in caplog.text
