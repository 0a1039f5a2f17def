import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any, Dict, List, Optional, Union

from app.config import settings
from app.services import email_templates as templates
from app.services.email_templates import EmailContent
from app.utils.validators import is_valid_email

logger = logging.getLogger(__name__)


class EmailError(Exception):
    pass


class EmailService:
    def __init__(self):
        self.smtp_server = settings.smtp_server
        self.smtp_port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.timeout = settings.smtp_timeout
        self.email_from = settings.email_from

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def is_valid_email(self, email: Optional[str]) -> bool:
        return is_valid_email(email)

    def _require_valid(self, email: Optional[str]):
        if not self.is_valid_email(email):
            raise EmailError("Invalid email format")

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout)
        server.starttls(context=ssl.create_default_context())
        server.login(self.username, self.password)
        return server

    def send_email(self, to: str, content: EmailContent) -> Dict[str, Any]:
        """Send one message; raises EmailError on any failure"""
        self._require_valid(to)
        if not self.configured:
            raise EmailError("Email service not configured. Please set SMTP credentials in environment variables.")

        msg = MIMEMultipart('alternative')
        msg['Subject'] = content.subject
        msg['From'] = self.email_from
        msg['To'] = to
        msg['Message-ID'] = make_msgid()

        # Plain text first, HTML last so clients prefer HTML
        msg.attach(MIMEText(content.text, 'plain'))
        msg.attach(MIMEText(content.html, 'html'))

        try:
            server = self._connect()
            try:
                server.sendmail(self.email_from, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email Service Error sending to {to}: {e}")
            raise EmailError(f"Failed to send email: {e}") from e

        logger.info(f"Email sent successfully: {msg['Message-ID']} -> {to}")
        return {
            "success": True,
            "messageId": msg['Message-ID'],
            "message": "Email sent successfully",
        }

    # ------------------------------------------------------------------
    # Templated sends
    # ------------------------------------------------------------------

    def send_welcome_email(self, email: str, name: str):
        self._require_valid(email)
        return self.send_email(email, templates.welcome_email(name))

    def send_service_assigned_email(self, email: str, customer_name: str, service_request: dict, vendor: Optional[dict]):
        self._require_valid(email)
        return self.send_email(email, templates.service_assigned_email(customer_name, service_request, vendor))

    def send_admin_notification_email(self, admin_email: str, service_request: dict):
        self._require_valid(admin_email)
        return self.send_email(admin_email, templates.admin_notification_email(service_request))

    def send_contact_email(self, contact: dict):
        return self.send_email(settings.admin_email, templates.contact_form_email(contact))

    def send_otp(self, email: str, otp_code: str):
        self._require_valid(email)
        return self.send_email(email, templates.otp_email(otp_code, settings.otp_expiry_minutes))

    def send_password_reset_email(self, email: str, name: str):
        self._require_valid(email)
        return self.send_email(email, templates.password_reset_email(name))

    def send_payment_link_email(self, email: str, customer_name: str, service_request: dict, payment_url: str, amount: float, expires_at):
        self._require_valid(email)
        return self.send_email(
            email, templates.payment_link_email(customer_name, service_request, payment_url, amount, expires_at)
        )

    def send_payment_success_email(self, email: str, customer_name: str, service_request: dict, payment: dict):
        self._require_valid(email)
        return self.send_email(email, templates.payment_success_email(customer_name, service_request, payment))

    def send_payment_failure_email(self, email: str, customer_name: str, service_request: dict, payment: dict, retry_url: Optional[str] = None):
        self._require_valid(email)
        return self.send_email(email, templates.payment_failure_email(customer_name, service_request, payment, retry_url))

    def send_order_confirmation_email(self, email: str, customer_name: str, service_request: dict):
        self._require_valid(email)
        return self.send_email(email, templates.order_confirmation_email(customer_name, service_request))

    def send_test_email(self, email: str):
        self._require_valid(email)
        return self.send_email(
            email, templates.service_test_email(email, self.smtp_server, self.smtp_port, self.email_from)
        )

    def send_marketing_email(self, recipients: Union[str, List[str]], subject: str, message: str, title: Optional[str] = None) -> Dict[str, Any]:
        """
        Send to each recipient individually and report a per-recipient tally.
        One rejected recipient never stops the rest of the broadcast.
        """
        recipient_list = recipients if isinstance(recipients, list) else [recipients]
        valid_recipients = [email for email in recipient_list if self.is_valid_email(email)]
        if not valid_recipients:
            raise EmailError("No valid email addresses provided")

        content = templates.marketing_email(subject, message, title or f"Important Update from {settings.company_name}")

        results = []
        for recipient in valid_recipients:
            try:
                result = self.send_email(recipient, content)
                results.append({"recipient": recipient, **result})
            except EmailError as e:
                results.append({"recipient": recipient, "success": False, "error": str(e)})

        total_sent = len([r for r in results if r["success"]])
        return {
            "success": total_sent == len(results),
            "results": results,
            "totalSent": total_sent,
            "totalFailed": len(results) - total_sent,
        }

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_connection(self) -> Dict[str, Any]:
        """Probe SMTP connectivity and authentication without sending anything"""
        if not self.configured:
            return {
                "success": False,
                "message": "Email service not configured. Please set email credentials in environment variables.",
                "troubleshooting": [
                    "Set SMTP_USERNAME and SMTP_PASSWORD in your .env file",
                    "For Microsoft 365, you may need to use an App Password instead of your regular password",
                    "Ensure SMTP authentication is enabled for your mailbox",
                ],
            }

        try:
            server = self._connect()
            server.noop()
            server.quit()
            return {"success": True, "message": "Email service is configured correctly"}
        except (smtplib.SMTPException, OSError) as e:
            error_text = str(e)
            if "SmtpClientAuthentication is disabled" in error_text:
                troubleshooting = [
                    "SMTP authentication is disabled for your Microsoft 365 mailbox",
                    "To enable SMTP AUTH:",
                    "  1. Log in to Microsoft 365 Admin Center (admin.microsoft.com)",
                    "  2. Go to Settings > Mail > Mailboxes",
                    f"  3. Select the mailbox ({self.username})",
                    '  4. Enable "SMTP AUTH" in the mailbox settings',
                    "  5. Alternatively, use an App Password instead of your regular password",
                ]
            elif isinstance(e, smtplib.SMTPAuthenticationError):
                troubleshooting = [
                    "Invalid login credentials",
                    "For Microsoft 365, try using an App Password instead of your regular password",
                    "To create an App Password:",
                    "  1. Go to account.microsoft.com/security",
                    "  2. Enable two-factor authentication",
                    "  3. Create a new App Password",
                    "  4. Use this App Password in SMTP_PASSWORD",
                ]
            else:
                troubleshooting = [
                    "Check your SMTP_USERNAME and SMTP_PASSWORD in .env file",
                    "Verify SMTP settings:",
                    f"  - Host: {self.smtp_server}",
                    f"  - Port: {self.smtp_port}",
                    "Ensure outbound SMTP traffic is allowed from this server",
                ]
            logger.warning(f"Email connection test failed: {error_text}")
            return {
                "success": False,
                "message": f"Email service configuration error: {error_text}",
                "troubleshooting": troubleshooting,
                "errorCode": getattr(e, "smtp_code", None),
            }


def get_email_service() -> EmailService:
    return EmailService()
