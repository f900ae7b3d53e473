"""
core/mailer.py -- Outbound mail for verification codes and account notices.

The auth core only ever calls Mailer.send(to_address, template_id, context)
and never waits for the result: delivery is best effort. A failed send is
logged; the user recovers by requesting a new code after the cooldown.

Implementations:
  SmtpMailer -- smtplib over STARTTLS, run on a small ThreadPoolExecutor so
                the request thread returns immediately.
  LogMailer  -- writes the rendered message to the log. Used when SMTP_HOST
                is not configured (local development), so codes are still
                visible to the developer.

build_mailer(settings) picks one. The instance is created once in the API
lifespan and passed into AuthService -- there is no module-level transport.

Layer rule: core/ is the kernel. No imports from api/, auth/, or todo/.
"""

from __future__ import annotations

import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("priorly.mail")

# template_id -> (subject, plain-text body). Bodies are str.format templates
# filled from the context dict passed to send().
TEMPLATES: dict[str, tuple[str, str]] = {
    "signup": (
        "Verify your Priorly account",
        "Your Priorly verification code is {code}.\n\nIt expires in {ttl_minutes} minutes.",
    ),
    "welcome": (
        "Welcome to Priorly!",
        "Your account is ready. Log in at {login_link}.",
    ),
    "forgot-password": (
        "Reset your Priorly password",
        "Your password reset code is {code}.\n\nIt expires in {ttl_minutes} minutes. "
        "If you did not ask for this, you can ignore this email.",
    ),
    "password-changed": (
        "Your Priorly password was changed",
        "The password for your Priorly account was just changed. "
        "If this was not you, reset your password immediately.",
    ),
    "change-email": (
        "Confirm your new Priorly email",
        "Your email change code is {code}.\n\nIt expires in {ttl_minutes} minutes.",
    ),
    "email-changed-old": (
        "Your Priorly email was changed",
        "Your Priorly account email was changed to {new_email}. If this was not you, contact support.",
    ),
    "email-changed-new": (
        "Your Priorly email was changed",
        "This address is now the login email for your Priorly account.",
    ),
    "account-deleted": (
        "Your Priorly account was deleted",
        "Your Priorly account and all of its to-do items have been deleted.",
    ),
}


class Mailer(Protocol):
    def send(self, to_address: str, template_id: str, context: dict) -> None: ...

    def close(self) -> None: ...


def render(template_id: str, context: dict) -> tuple[str, str]:
    """Return (subject, body) for template_id. Raises KeyError for unknown ids."""
    subject, body = TEMPLATES[template_id]
    return subject, body.format(**context)


class LogMailer:
    """Logs messages instead of sending them. Development only."""

    def send(self, to_address: str, template_id: str, context: dict) -> None:
        try:
            subject, body = render(template_id, context)
        except (KeyError, IndexError):
            logger.exception("Could not render mail template %r", template_id)
            return
        logger.info("Mail to %s | %s | %s", to_address, subject, body.replace("\n", " "))

    def close(self) -> None:
        pass


class SmtpMailer:
    """Sends mail via SMTP on a background thread pool."""

    def __init__(self, settings: Settings, max_workers: int = 2) -> None:
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._username = settings.smtp_username
        self._password = settings.smtp_password
        self._starttls = settings.smtp_starttls
        self._from = settings.mail_from
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mailer")

    def send(self, to_address: str, template_id: str, context: dict) -> None:
        future = self._pool.submit(self._deliver, to_address, template_id, context)
        future.add_done_callback(lambda f: self._log_result(f, to_address, template_id))

    def _deliver(self, to_address: str, template_id: str, context: dict) -> None:
        subject, body = render(template_id, context)
        message = EmailMessage()
        message["From"] = self._from
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self._host, self._port, timeout=30) as server:
            if self._starttls:
                server.starttls()
            if self._username:
                server.login(self._username, self._password)
            server.send_message(message)

    @staticmethod
    def _log_result(future: Future, to_address: str, template_id: str) -> None:
        exc = future.exception()
        if exc is None:
            logger.info("Mail %r sent to %s", template_id, to_address)
        else:
            logger.error("Failed to send mail %r to %s: %s", template_id, to_address, exc)

    def close(self) -> None:
        self._pool.shutdown(wait=True)


def build_mailer(settings: Settings) -> Mailer:
    """Return SmtpMailer when SMTP_HOST is set, LogMailer otherwise."""
    if settings.smtp_host:
        logger.info("SMTP mailer configured (%s:%d)", settings.smtp_host, settings.smtp_port)
        return SmtpMailer(settings)
    logger.warning("SMTP_HOST not set -- outgoing mail will be logged, not sent")
    return LogMailer()
