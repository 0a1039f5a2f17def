"""
Transactional email templates.

Each builder is a pure function of (recipient data) -> EmailContent with a
subject, an HTML body and a plain-text body. Nothing here talks to SMTP; see
`app.services.email.EmailService` for delivery.
"""
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Any, Dict, Optional

from app.config import settings


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str


def _fmt_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %b %Y")
    if value:
        return str(value)
    return "TBD"


def _fmt_amount(value: Optional[float]) -> str:
    return f"{settings.currency} {float(value):,.2f}"


def _footer_text() -> str:
    return f"© {datetime.utcnow().year} {settings.company_name}. All rights reserved."


def _layout(heading: str, body_html: str, accent: str = "#2c3e50") -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(heading)}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
  <table role="presentation" style="width: 100%; border-collapse: collapse;">
    <tr>
      <td style="padding: 20px 0; text-align: center; background-color: #ffffff;">
        <h1 style="color: {accent}; margin: 0;">{escape(settings.company_name)}</h1>
      </td>
    </tr>
    <tr>
      <td style="padding: 40px 20px;">
        <table role="presentation" style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 10px; padding: 30px;">
          <tr>
            <td>
              <h2 style="color: {accent}; margin-top: 0;">{escape(heading)}</h2>
              {body_html}
              <p style="color: #666; font-size: 16px; line-height: 1.6;">Best regards,<br>The {escape(settings.company_name)} Team</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
    <tr>
      <td style="padding: 20px; text-align: center; background-color: #ffffff;">
        <p style="color: #999; font-size: 12px; margin: 0;">{escape(_footer_text())}</p>
      </td>
    </tr>
  </table>
</body>
</html>"""


def _paragraph(text: str) -> str:
    return f'<p style="color: #666; font-size: 16px; line-height: 1.6;">{text}</p>'


def _details_table(rows: Dict[str, Any]) -> str:
    cells = "".join(
        f'<tr><td style="padding: 6px 10px; color: #333;"><strong>{escape(str(label))}</strong></td>'
        f'<td style="padding: 6px 10px; color: #666;">{escape(str(value))}</td></tr>'
        for label, value in rows.items()
    )
    return (
        '<table role="presentation" style="width: 100%; margin: 20px 0; background-color: #f8f9fa; '
        f'border-radius: 4px;">{cells}</table>'
    )


def _details_text(rows: Dict[str, Any]) -> str:
    return "\n".join(f"- {label}: {value}" for label, value in rows.items())


def _button(url: str, label: str, color: str = "#007bff") -> str:
    return (
        f'<p style="text-align: center; margin: 30px 0;"><a href="{escape(url)}" '
        f'style="display: inline-block; padding: 12px 24px; background-color: {color}; color: #ffffff; '
        f'text-decoration: none; border-radius: 5px; font-size: 16px;">{escape(label)}</a></p>'
    )


def welcome_email(name: str) -> EmailContent:
    company = settings.company_name
    subject = f"Welcome to {company}!"
    html = _layout(
        f"Welcome, {name}!",
        _paragraph(f"Thank you for creating your account with {escape(company)}. We're excited to have you on board!")
        + _paragraph("You can request services, track your orders, and connect with trusted vendors in your area.")
        + _paragraph("If you have any questions or need assistance, feel free to contact our support team."),
    )
    text = f"""Welcome to {company}!

Thank you for creating your account with {company}, {name}. We're excited to have you on board!

What you can do:
- Request services from our wide range of offerings
- Track your service requests in real-time
- Get connected with professional vendors
- Manage your account and preferences

If you have any questions or need assistance, feel free to contact our support team.

Best regards,
The {company} Team

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def service_assigned_email(customer_name: str, service_request: Dict[str, Any], vendor: Optional[Dict[str, Any]]) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    vendor_name = (vendor or {}).get("name") or "Assigned Vendor"
    rows = {
        "Service": service_name,
        "Request Type": service_request.get("request_type") or "Service Request",
        "Scheduled Date": _fmt_date(service_request.get("requested_date")),
        "Assigned Vendor": vendor_name,
    }
    if service_request.get("total_price"):
        rows["Total Price"] = _fmt_amount(service_request["total_price"])

    subject = f"Your {service_name} Request Has Been Assigned"
    html = _layout(
        f"Great News, {customer_name}!",
        _paragraph("Your service request has been assigned to a professional vendor.")
        + _details_table(rows)
        + _paragraph("Your assigned vendor will contact you soon to confirm the details and schedule."),
        accent="#28a745",
    )
    text = f"""Great News, {customer_name}!

Your service request has been assigned to a professional vendor.

Service Request Details:
{_details_text(rows)}

Your assigned vendor will contact you soon to confirm the details and schedule.
You can track your service request status in your account dashboard.

Best regards,
The {settings.company_name} Team

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def admin_notification_email(service_request: Dict[str, Any]) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    request_rows = {
        "Request ID": service_request.get("id") or "N/A",
        "Service": service_name,
        "Request Type": service_request.get("request_type") or "Service Request",
        "Scheduled Date": _fmt_date(service_request.get("requested_date")),
    }
    customer_rows = {
        "Name": service_request.get("user_name") or "Customer",
        "Email": service_request.get("user_email") or "N/A",
        "Phone": service_request.get("user_phone") or "N/A",
        "Address": service_request.get("address") or "N/A",
    }
    if service_request.get("total_price"):
        request_rows["Total Price"] = _fmt_amount(service_request["total_price"])

    subject = f"New Service Request: {service_name}"
    html = _layout(
        "New Service Request Received",
        _paragraph("A new service request has been submitted and requires your attention.")
        + _details_table(request_rows)
        + _details_table(customer_rows)
        + _paragraph("Please review this request and assign it to an appropriate vendor."),
        accent="#dc3545",
    )
    text = f"""New Service Request Received

A new service request has been submitted and requires your attention.

Request Details:
{_details_text(request_rows)}

Customer Information:
{_details_text(customer_rows)}

Please review this request and assign it to an appropriate vendor.

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def contact_form_email(contact: Dict[str, Any]) -> EmailContent:
    full_name = f"{contact.get('first_name', '')} {contact.get('last_name', '')}".strip()
    rows = {
        "Name": full_name,
        "Email": contact.get("email"),
        "Phone": contact.get("phone"),
        "Subject": contact.get("subject"),
    }
    message = contact.get("message") or ""
    subject = f"Contact Form: {contact.get('subject')}"
    html = _layout(
        "New Contact Form Submission",
        _details_table(rows)
        + _paragraph(escape(message).replace("\n", "<br>")),
    )
    text = f"""New Contact Form Submission

{_details_text(rows)}

Message:
{message}

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def marketing_email(subject: str, message: str, title: str) -> EmailContent:
    html = _layout(
        title,
        _paragraph(escape(message).replace("\n", "<br>"))
        + f'<p style="color: #999; font-size: 12px;">You are receiving this email because you are a registered user of {escape(settings.company_name)}.</p>',
    )
    return EmailContent(subject, html, message)


def service_test_email(recipient: str, smtp_server: str, smtp_port: int, sender: str) -> EmailContent:
    rows = {
        "Host": smtp_server,
        "Port": smtp_port,
        "From": sender,
        "Status": "Connected and Working",
        "Recipient": recipient,
        "Test Time": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC"),
    }
    html = _layout(
        "Email Service Test Successful",
        _paragraph(f"This is a test email from the {escape(settings.company_name)} email service.")
        + _details_table(rows)
        + _paragraph("If you received this email, your email service is configured and working correctly."),
        accent="#28a745",
    )
    text = (
        f"{settings.company_name} - Email Service Test\n\n"
        "Email Service Test Successful\n\n"
        f"{_details_text(rows)}\n\n"
        "If you received this email, your email service is configured and working correctly.\n\n"
        f"{_footer_text()}"
    )
    return EmailContent(f"{settings.company_name} - Email Service Test", html, text)


def otp_email(otp_code: str, expiry_minutes: int) -> EmailContent:
    company = settings.company_name
    subject = f"{company} - Verification Code"
    html = _layout(
        "Verification Code",
        _paragraph(f"Your {escape(company)} verification code is:")
        + f'<p style="font-size: 32px; font-weight: bold; letter-spacing: 5px; text-align: center; color: #007bff;">{escape(otp_code)}</p>'
        + _paragraph(f"This code will expire in <strong>{expiry_minutes} minutes</strong>.")
        + _paragraph(f"Do not share this code with anyone. {escape(company)} will never ask for your verification code."),
    )
    text = f"""{company} - Verification Code

Your {company} verification code is: {otp_code}

This code will expire in {expiry_minutes} minutes.

Important: Do not share this code with anyone. {company} will never ask for your verification code.
If you didn't request this code, please ignore this email.

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def password_reset_email(name: str) -> EmailContent:
    company = settings.company_name
    subject = f"{company} - Your Password Has Been Reset"
    html = _layout(
        "Password Reset Successful",
        _paragraph(f"Hello {escape(name)},")
        + _paragraph("The password for your account has been changed successfully.")
        + _paragraph("If you did not make this change, please contact our support team immediately."),
    )
    text = f"""Password Reset Successful

Hello {name},

The password for your account has been changed successfully.
If you did not make this change, please contact our support team immediately.

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def payment_link_email(customer_name: str, service_request: Dict[str, Any], payment_url: str, amount: float, expires_at: Any) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    rows = {
        "Service": service_name,
        "Request ID": service_request.get("id"),
        "Amount Due": _fmt_amount(amount),
        "Link Expires": _fmt_date(expires_at),
    }
    subject = f"Payment Request for {service_name}"
    html = _layout(
        f"Hello {customer_name},",
        _paragraph("Please complete the payment for your service request using the secure link below.")
        + _details_table(rows)
        + _button(payment_url, "Pay Now")
        + _paragraph("This link can only be used once."),
    )
    text = f"""Hello {customer_name},

Please complete the payment for your service request using the secure link below.

{_details_text(rows)}

Pay here: {payment_url}

This link can only be used once.

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def payment_success_email(customer_name: str, service_request: Dict[str, Any], payment: Dict[str, Any]) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    rows = {
        "Service": service_name,
        "Amount Paid": _fmt_amount(payment.get("amount") or 0),
        "Transaction ID": payment.get("transactionId") or "N/A",
        "Order ID": payment.get("orderId") or "N/A",
    }
    subject = f"Payment Received - {service_name}"
    html = _layout(
        "Payment Successful",
        _paragraph(f"Hello {escape(customer_name)}, we have received your payment. Thank you!")
        + _details_table(rows),
        accent="#28a745",
    )
    text = f"""Payment Successful

Hello {customer_name}, we have received your payment. Thank you!

{_details_text(rows)}

{_footer_text()}
"""
    return EmailContent(subject, html, text)


def payment_failure_email(customer_name: str, service_request: Dict[str, Any], payment: Dict[str, Any], retry_url: Optional[str] = None) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    rows = {
        "Service": service_name,
        "Amount": _fmt_amount(payment.get("amount") or 0),
        "Reason": payment.get("failureReason") or "Payment was declined",
    }
    subject = f"Payment Failed - {service_name}"
    body = (
        _paragraph(f"Hello {escape(customer_name)}, unfortunately your payment could not be processed.")
        + _details_table(rows)
    )
    if retry_url:
        body += _button(retry_url, "Try Again", color="#dc3545")
    html = _layout("Payment Failed", body, accent="#dc3545")
    retry_line = f"Try again: {retry_url}\n" if retry_url else ""
    text = f"""Payment Failed

Hello {customer_name}, unfortunately your payment could not be processed.

{_details_text(rows)}

{retry_line}
{_footer_text()}
"""
    return EmailContent(subject, html, text)


def order_confirmation_email(customer_name: str, service_request: Dict[str, Any]) -> EmailContent:
    service_name = service_request.get("service_name") or "Service"
    rows = {
        "Order ID": service_request.get("id"),
        "Service": service_name,
        "Scheduled Date": _fmt_date(service_request.get("requested_date")),
        "Units": service_request.get("number_of_units") or 1,
    }
    if service_request.get("total_price"):
        rows["Total"] = _fmt_amount(service_request["total_price"])
    subject = f"Order Confirmed - {service_name}"
    html = _layout(
        "Your Order Is Confirmed",
        _paragraph(f"Hello {escape(customer_name)}, your order has been confirmed.")
        + _details_table(rows)
        + _paragraph("We will keep you updated as your service progresses."),
        accent="#28a745",
    )
    text = f"""Your Order Is Confirmed

Hello {customer_name}, your order has been confirmed.

{_details_text(rows)}

We will keep you updated as your service progresses.

{_footer_text()}
"""
    return EmailContent(subject, html, text)
