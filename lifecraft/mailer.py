"""
Outgoing email over SMTP: drill completion notices and password resets.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import date
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Optional

from lifecraft.config import Settings, get_settings
from lifecraft.errors import ServiceUnavailableError, UpstreamServiceError

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Email service not configured"


class Mailer:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.enabled = settings.email_enabled
        self.host = settings.email_smtp_host
        self.port = settings.email_smtp_port
        self.user = settings.email_smtp_username
        self.passwd = settings.email_smtp_password
        self.use_ssl = settings.email_smtp_ssl
        self.use_starttls = settings.email_smtp_starttls
        self.from_name = settings.email_from_name

    @property
    def configured(self) -> bool:
        return bool(self.enabled and self.user and self.passwd)

    def send(
        self,
        subject: str,
        body_text: str,
        to_addr: str,
        body_html: Optional[str] = None,
    ) -> str:
        """Send one message and return its Message-ID."""
        if not self.configured:
            logger.error("Email requested but SMTP credentials are not configured")
            raise ServiceUnavailableError(NOT_CONFIGURED_MESSAGE)

        msg = EmailMessage()
        msg["From"] = f"{self.from_name} <{self.user}>"
        msg["To"] = to_addr
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain="lifecraft")
        msg.set_content(body_text)
        if body_html:
            msg.add_alternative(body_html, subtype="html")

        try:
            if self.use_ssl:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.host, self.port, context=context) as smtp:
                    smtp.login(self.user, self.passwd)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
                    if self.use_starttls:
                        smtp.starttls(context=ssl.create_default_context())
                    smtp.login(self.user, self.passwd)
                    smtp.send_message(msg)
        except smtplib.SMTPAuthenticationError as exc:
            logger.exception("SMTP authentication failed")
            raise UpstreamServiceError(
                "Email authentication failed. Please check your credentials."
            ) from exc
        except (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected) as exc:
            logger.exception("SMTP connection failed")
            raise UpstreamServiceError(
                "Network error. Please check your internet connection."
            ) from exc
        except smtplib.SMTPException as exc:
            logger.exception("SMTP error")
            raise UpstreamServiceError(f"Failed to send notification: {exc}") from exc
        except OSError as exc:
            # SMTPException subclasses OSError, so plain socket errors land here last.
            logger.exception("SMTP connection failed")
            raise UpstreamServiceError(
                "Network error. Please check your internet connection."
            ) from exc

        logger.info("Email sent to %s: %s", to_addr, msg["Message-ID"])
        return msg["Message-ID"]


def _format_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:%A, %B} {value.day}, {value.year}"


def completion_email(
    full_name: str,
    drill_title: str,
    drill_date: Optional[date] = None,
    drill_location: Optional[str] = None,
) -> tuple[str, str, str]:
    """Build the (subject, text, html) of a drill completion notice."""
    subject = f"🎉 Drill Completed - {drill_title}"
    date_text = _format_date(drill_date)

    lines = [
        f"Hello {full_name},",
        "",
        f"Congratulations! You have successfully completed the drill: {drill_title}",
        "",
    ]
    if date_text:
        lines.append(f"Date: {date_text}")
    if drill_location:
        lines.append(f"Location: {drill_location}")
    lines += [
        "",
        "Your certificate is now available in your dashboard and can be downloaded at any time.",
        "",
        "Keep up the excellent work in your training journey!",
        "",
        "LifeCraft Training Program",
        "Building skills, saving lives",
    ]
    text = "\n".join(lines)

    details = ""
    if date_text:
        details += f"<p><strong>Date:</strong> {escape(date_text)}</p>"
    if drill_location:
        details += f"<p><strong>Location:</strong> {escape(drill_location)}</p>"
    html = (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif;\">"
        "<h1>🎉 CONGRATULATIONS</h1>"
        f"<p>Hello <strong>{escape(full_name)}</strong>,</p>"
        "<p>Great news! You have successfully completed the following drill:</p>"
        f"<div style=\"border: 2px solid #000; padding: 20px;\"><h2>{escape(drill_title)}</h2>{details}</div>"
        "<p><strong>📜 Your Certificate is Ready!</strong><br/>"
        "Your completion certificate is now available in your dashboard and can be downloaded at any time.</p>"
        "<p>Keep up the excellent work in your training journey!</p>"
        "<p><strong>LifeCraft Training Program</strong><br/>Building skills, saving lives</p>"
        "</body></html>"
    )
    return subject, text, html


def send_completion_notification(
    mailer: Mailer,
    email: str,
    full_name: str,
    drill_title: str,
    drill_date: Optional[date] = None,
    drill_location: Optional[str] = None,
) -> str:
    subject, text, html = completion_email(full_name, drill_title, drill_date, drill_location)
    return mailer.send(subject, text, to_addr=email, body_html=html)


def send_password_reset(mailer: Mailer, email: str, reset_link: str) -> str:
    text = (
        "We received a request to reset your LifeCraft password.\n\n"
        f"Open this link to choose a new one: {reset_link}\n\n"
        "If you did not ask for this, you can ignore this email."
    )
    return mailer.send("Reset your LifeCraft password", text, to_addr=email)
