"""Outbound email for admin one-time passwords."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from config import Settings

logger = logging.getLogger(__name__)

OTP_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; color: #333; line-height: 1.6; max-width: 600px; margin: auto;">
  <h2 style="color: #1a73e8;">Hello Admin,</h2>
  <p>Use the code below to finish signing in to the dashboard:</p>
  <p style="font-size: 24px; font-weight: bold; margin: 20px 0;">{otp}</p>
  <p>This code is valid for the next <strong>{minutes} minutes</strong>. Do not share it with anyone.</p>
  <p style="font-size: 12px; color: #888;">If you did not request this code, ignore this email.</p>
</div>
"""


def build_otp_message(settings: Settings, to: str, otp: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = settings.otp_email_subject
    msg["From"] = settings.smtp_from or settings.smtp_user or "no-reply@localhost"
    msg["To"] = to
    minutes = max(settings.otp_ttl_seconds // 60, 1)
    msg.set_content(f"Your admin OTP is {otp}. It expires in {minutes} minutes.")
    msg.add_alternative(OTP_TEMPLATE.format(otp=otp, minutes=minutes), subtype="html")
    return msg


def send_otp_email(settings: Settings, to: str, otp: str) -> bool:
    """Deliver the OTP. Failures are logged, never raised."""
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not configured, OTP email to admin not sent")
        return False
    msg = build_otp_message(settings, to, otp)
    smtp_cls = smtplib.SMTP_SSL if settings.smtp_secure else smtplib.SMTP
    try:
        with smtp_cls(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            smtp.ehlo()
            if not settings.smtp_secure and smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_pass or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("failed to send OTP email")
        return False
    return True
