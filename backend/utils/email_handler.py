import logging
from mailersend import EmailBuilder, MailerSendClient

from config import template_env, MAIL_FROM_NAME, PENDING_DEVICE_MINUTES, DEVICE_TRUST_DAYS
from database.models import utcnow


def render_email_template(template_name, **kwargs):
    """Render an email template."""
    template = template_env.get_template(template_name)
    return template.render(**kwargs)


class EmailNotifier:
    """
    Best-effort security notifications.
    Send methods never raise; they return whether the provider accepted the email.
    """

    def __init__(self, api_key, from_email, from_name=MAIL_FROM_NAME):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = MailerSendClient(api_key=self.api_key)
        return self._client

    def _build_email(self, email, subject, html_content, text_content):
        return (EmailBuilder()
                .from_email(self.from_email, self.from_name)
                .to_many([{"email": email, "name": email.split('@')[0]}])
                .subject(subject)
                .html(html_content)
                .text(text_content)
                .build())

    def _send(self, email, subject, html_content, text_content):
        if not self.api_key:
            logging.warning(f"MAILERSEND_API_KEY not configured, skipping '{subject}' email to {email}")
            return False
        try:
            logging.info(f"Sending '{subject}' email to: {email}")
            email_content = self._build_email(email, subject, html_content, text_content)
            self._get_client().emails.send(email_content)
            logging.info(f"'{subject}' email successfully sent to {email}")
            return True
        except Exception as e:
            logging.error(f"Failed to send '{subject}' email to {email}: {e}")
            return False

    def send_device_approval_email(self, email, approval_link, browser, os):
        try:
            html_content = render_email_template(
                "device_approval_email_template.html",
                approval_link=approval_link,
                browser=browser,
                os=os,
                requested_at=utcnow().strftime('%Y-%m-%d %H:%M UTC'),
                expiry_minutes=PENDING_DEVICE_MINUTES,
                trust_days=DEVICE_TRUST_DAYS,
            )
        except Exception as e:
            logging.error(f"Failed to render device approval email for {email}: {e}")
            return False

        sent = self._send(
            email,
            f"{self.from_name} - New Device Login Approval",
            html_content,
            f"A login attempt was made from {browser} on {os}. "
            f"Approve this device within {PENDING_DEVICE_MINUTES} minutes: {approval_link}",
        )
        if not sent:
            logging.error(f"Device approval email not delivered to {email}, approval link: {approval_link}")
        return sent

    def send_device_revoked_email(self, email, browser, os):
        try:
            html_content = render_email_template(
                "device_revoked_email_template.html",
                browser=browser,
                os=os,
                revoked_at=utcnow().strftime('%Y-%m-%d %H:%M UTC'),
            )
        except Exception as e:
            logging.error(f"Failed to render device revoked email for {email}: {e}")
            return False

        return self._send(
            email,
            f"{self.from_name} - Device Removed",
            html_content,
            f"A trusted device ({browser} on {os}) was removed from your account. "
            "If this was not you, change your password immediately.",
        )
