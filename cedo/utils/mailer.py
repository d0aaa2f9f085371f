from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger(__name__)


class MailerError(Exception):
    pass


class NotificationChannel(Protocol):
    """External delivery channel consumed by the notification dispatcher."""

    def send(self, to: str, template: str, data: Mapping[str, Any]) -> None: ...


# subject, plain-text body; formatted with the template data
EMAIL_TEMPLATES: dict[str, tuple[str, str]] = {
    "proposal-submitted": (
        "Proposal submitted: {event_name}",
        "Your proposal \"{event_name}\" has been submitted and is waiting for review.",
    ),
    "proposal-resubmitted": (
        "Proposal resubmitted: {event_name}",
        "Your proposal \"{event_name}\" has been resubmitted for review.",
    ),
    "proposal-approved": (
        "Proposal approved: {event_name}",
        "Your proposal \"{event_name}\" has been approved. Congratulations!",
    ),
    "proposal-denied": (
        "Proposal not approved: {event_name}",
        "Your proposal \"{event_name}\" has not been approved.\n\nAdmin comments:\n{admin_comments}",
    ),
    "proposal-revision-requested": (
        "Revision requested: {event_name}",
        "An administrator requested changes to \"{event_name}\".\n\nAdmin comments:\n{admin_comments}",
    ),
    "report-approved": (
        "Report approved: {event_name}",
        "The accomplishment report for \"{event_name}\" has been approved.",
    ),
    "report-denied": (
        "Report not approved: {event_name}",
        "The accomplishment report for \"{event_name}\" was not approved.\n\nAdmin comments:\n{admin_comments}",
    ),
}


class _TemplateData(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render_template(template: str, data: Mapping[str, Any]) -> tuple[str, str]:
    if template not in EMAIL_TEMPLATES:
        raise MailerError(f"Unknown email template: {template}")
    subject, body = EMAIL_TEMPLATES[template]
    values = _TemplateData({k: "" if v is None else v for k, v in data.items()})
    return subject.format_map(values), body.format_map(values)


@dataclass(slots=True)
class SendGridMailer:
    api_key: str
    from_email: str

    def send(self, to: str, template: str, data: Mapping[str, Any]) -> None:
        subject, text = render_template(template, data)

        msg = Mail(
            from_email=self.from_email,
            to_emails=to,
            subject=subject,
            plain_text_content=text,
        )

        try:
            client = SendGridAPIClient(self.api_key)
            resp = client.send(msg)
            if resp.status_code < 200 or resp.status_code >= 300:
                raise MailerError(f"SendGrid failed with status {resp.status_code}")
        except MailerError:
            raise
        except Exception as e:
            raise MailerError("Failed to send email") from e


class LoggingMailer:
    """Channel used when SendGrid is not configured: records and drops the message."""

    def send(self, to: str, template: str, data: Mapping[str, Any]) -> None:
        subject, _ = render_template(template, data)
        logger.info("Email channel disabled; not sending %r to %s", subject, to)


def build_sendgrid_mailer_from_env() -> SendGridMailer:
    api_key = os.getenv("SENDGRID_API_KEY", "").strip()
    from_email = os.getenv("SENDGRID_FROM_EMAIL", "").strip()
    if not api_key:
        raise RuntimeError("SENDGRID_API_KEY is not set")
    if not from_email:
        raise RuntimeError("SENDGRID_FROM_EMAIL is not set")
    return SendGridMailer(api_key=api_key, from_email=from_email)


def build_channel_from_env() -> NotificationChannel:
    if not os.getenv("SENDGRID_API_KEY", "").strip():
        return LoggingMailer()
    return build_sendgrid_mailer_from_env()
