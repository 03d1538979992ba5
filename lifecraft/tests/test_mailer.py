import smtplib
import unittest
from datetime import date
from unittest.mock import MagicMock, patch

from lifecraft.config import Settings
from lifecraft.errors import ServiceUnavailableError, UpstreamServiceError
from lifecraft.mailer import Mailer, completion_email, send_completion_notification


def _mailer(**overrides) -> Mailer:
    values = {
        "email_enabled": True,
        "email_smtp_username": "trainer@example.com",
        "email_smtp_password": "app-password",
    }
    values.update(overrides)
    return Mailer(Settings(**values))


class CompletionEmailTests(unittest.TestCase):
    def test_includes_formatted_date_and_location(self):
        subject, text, html = completion_email(
            "Ana Cruz", "Earthquake Drill", date(2026, 11, 1), "City Hall"
        )
        self.assertEqual(subject, "🎉 Drill Completed - Earthquake Drill")
        self.assertIn("Hello Ana Cruz,", text)
        self.assertIn("Date: Sunday, November 1, 2026", text)
        self.assertIn("Location: City Hall", text)
        self.assertIn("<h2>Earthquake Drill</h2>", html)

    def test_optional_details_are_omitted(self):
        _, text, html = completion_email("Ana", "Fire Drill")
        self.assertNotIn("Date:", text)
        self.assertNotIn("Location:", html)

    def test_html_is_escaped(self):
        _, _, html = completion_email("<b>Ana</b>", "Fire Drill")
        self.assertIn("&lt;b&gt;Ana&lt;/b&gt;", html)


class MailerTests(unittest.TestCase):
    def test_unconfigured_mailer_refuses_to_send(self):
        mailer = _mailer(email_enabled=False)
        self.assertFalse(mailer.configured)
        with self.assertRaises(ServiceUnavailableError) as ctx:
            mailer.send("Hi", "Body", to_addr="learner@example.com")
        self.assertEqual(ctx.exception.message, "Email service not configured")

    @patch("lifecraft.mailer.smtplib.SMTP_SSL")
    def test_send_over_ssl(self, smtp_ssl):
        smtp = MagicMock()
        smtp_ssl.return_value.__enter__.return_value = smtp

        message_id = send_completion_notification(
            _mailer(), "learner@example.com", "Ana", "Fire Drill"
        )

        self.assertTrue(message_id.startswith("<"))
        smtp.login.assert_called_once_with("trainer@example.com", "app-password")
        sent = smtp.send_message.call_args[0][0]
        self.assertEqual(sent["To"], "learner@example.com")
        self.assertEqual(sent["Message-ID"], message_id)
        self.assertTrue(sent.is_multipart())

    @patch("lifecraft.mailer.smtplib.SMTP")
    def test_send_with_starttls(self, smtp_plain):
        smtp = MagicMock()
        smtp_plain.return_value.__enter__.return_value = smtp
        mailer = _mailer(email_smtp_ssl=False, email_smtp_starttls=True, email_smtp_port=587)

        mailer.send("Hi", "Body", to_addr="learner@example.com")

        smtp.starttls.assert_called_once()
        smtp.send_message.assert_called_once()

    @patch("lifecraft.mailer.smtplib.SMTP_SSL")
    def test_authentication_failure(self, smtp_ssl):
        smtp = MagicMock()
        smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        smtp_ssl.return_value.__enter__.return_value = smtp

        with self.assertRaises(UpstreamServiceError) as ctx:
            _mailer().send("Hi", "Body", to_addr="learner@example.com")
        self.assertIn("authentication failed", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 502)

    @patch("lifecraft.mailer.smtplib.SMTP_SSL")
    def test_network_failure(self, smtp_ssl):
        smtp_ssl.side_effect = ConnectionRefusedError("refused")
        with self.assertRaises(UpstreamServiceError) as ctx:
            _mailer().send("Hi", "Body", to_addr="learner@example.com")
        self.assertIn("Network error", ctx.exception.message)

    @patch("lifecraft.mailer.smtplib.SMTP_SSL")
    def test_other_smtp_errors(self, smtp_ssl):
        smtp = MagicMock()
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        smtp_ssl.return_value.__enter__.return_value = smtp
        with self.assertRaises(UpstreamServiceError) as ctx:
            _mailer().send("Hi", "Body", to_addr="learner@example.com")
        self.assertTrue(ctx.exception.message.startswith("Failed to send notification"))


if __name__ == "__main__":
    unittest.main()
