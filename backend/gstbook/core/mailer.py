"""
Outbound Email
"""
from email.message import EmailMessage
from typing import List, Optional
import smtplib
import ssl
import logging

from fastapi import Request

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    pass


class Mailer:
    """Sends a single plain-text message"""

    def send(self, to: str, subject: str, body: str, reply_to: Optional[str] = None) -> None:
        raise NotImplementedError


class LogMailer(Mailer):
    """Development mailer that writes messages to the log instead of sending them"""

    def __init__(self):
        self.outbox: List[dict] = []

    def send(self, to: str, subject: str, body: str, reply_to: Optional[str] = None) -> None:
        self.outbox.append({"to": to, "subject": subject, "body": body, "reply_to": reply_to})
        logger.info(f"Email to {to}: {subject}")


class SmtpMailer(Mailer):
    def __init__(self, host: str, port: int, sender: str, username: Optional[str] = None,
                 password: Optional[str] = None, use_tls: bool = True, timeout: int = 10):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str, reply_to: Optional[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        if reply_to:
            message["Reply-To"] = reply_to
        message.set_content(body)
        return message

    def send(self, to: str, subject: str, body: str, reply_to: Optional[str] = None) -> None:
        message = self._build_message(to, subject, body, reply_to)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username:
                    server.login(self.username, self.password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email to {to}: {e}") from e


def build_mailer(settings) -> Mailer:
    if settings.SMTP_HOST:
        return SmtpMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.MAIL_FROM,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )
    logger.warning("SMTP_HOST not configured, emails will only be logged")
    return LogMailer()


def get_mailer(request: Request) -> Mailer:
    """Dependency returning the mailer created in the app lifespan"""
    return request.app.state.mailer
