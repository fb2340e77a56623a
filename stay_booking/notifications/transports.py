"""
Mail transports and the Notifier that tries them in order.

A transport never raises for a delivery problem: it returns a SendResult
with ``success=False`` and the error text. The Notifier walks its transport
list until one succeeds, so Resend outages fall back to SMTP without the
caller noticing anything but the ``transport`` name on the result.
"""

from __future__ import annotations

import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.message import EmailMessage as MimeMessage
from typing import Optional, Sequence

import requests
import structlog

from stay_booking import config
from stay_booking.metrics import transport_attempts

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    from_addr: str = ""


@dataclass(frozen=True)
class SendResult:
    success: bool
    transport: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: tuple[str, ...] = field(default_factory=tuple)


class MailTransport(ABC):
    """One way of delivering mail."""

    name: str = "base"

    @abstractmethod
    def send(self, message: EmailMessage) -> SendResult:
        """Deliver ``message``; report failures in the result instead of raising."""


class ResendTransport(MailTransport):
    """Delivery through the Resend HTTP API."""

    name = "resend"

    def __init__(self, api_key: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.timeout = timeout

    def send(self, message: EmailMessage) -> SendResult:
        try:
            res = requests.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": message.from_addr,
                    "to": [message.to],
                    "subject": message.subject,
                    "html": message.html,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return SendResult(success=False, transport=self.name, error=str(e))

        if res.status_code >= 400:
            return SendResult(
                success=False,
                transport=self.name,
                error=f"HTTP {res.status_code}: {res.text[:200]}",
            )

        try:
            message_id = res.json().get("id")
        except ValueError:
            message_id = None
        return SendResult(success=True, transport=self.name, message_id=message_id)


class SmtpTransport(MailTransport):
    """Delivery through an SMTP relay with optional STARTTLS and login."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, message: EmailMessage) -> SendResult:
        mime = MimeMessage()
        mime["From"] = message.from_addr
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content("This message requires an HTML-capable mail client.")
        mime.add_alternative(message.html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as e:
            return SendResult(success=False, transport=self.name, error=str(e))

        return SendResult(success=True, transport=self.name, message_id=mime.get("Message-ID"))


class Notifier:
    """
    Sends mail through an ordered list of transports; the first success wins.

    Args:
        transports: Transports to try, in priority order
        default_from: Sender address used when a message has none

    Example:
        >>> notifier = Notifier([ResendTransport("re_..."), SmtpTransport("smtp.example.com")])
        >>> message = EmailMessage(to="guest@example.com", subject="Hi", html="<p>Hi</p>")
        >>> result = notifier.send(message)
        >>> result.success, result.transport
        (True, 'resend')
    """

    def __init__(self, transports: Sequence[MailTransport], default_from: str = "") -> None:
        self.transports = list(transports)
        self.default_from = default_from

    def send(self, message: EmailMessage) -> SendResult:
        if not message.from_addr and self.default_from:
            message = EmailMessage(
                to=message.to,
                subject=message.subject,
                html=message.html,
                from_addr=self.default_from,
            )

        if not self.transports:
            logger.warning("mail_no_transport_configured", to=message.to, subject=message.subject)
            return SendResult(success=False, transport="none", error="No mail transport configured")

        errors: list[str] = []
        tried: list[str] = []
        for transport in self.transports:
            tried.append(transport.name)
            try:
                result = transport.send(message)
            except Exception as e:
                logger.exception("mail_transport_crashed", transport=transport.name)
                result = SendResult(success=False, transport=transport.name, error=str(e))

            transport_attempts.labels(
                transport=transport.name, status="success" if result.success else "failure"
            ).inc()

            if result.success:
                logger.info(
                    "mail_sent",
                    transport=transport.name,
                    to=message.to,
                    message_id=result.message_id,
                )
                return SendResult(
                    success=True,
                    transport=transport.name,
                    message_id=result.message_id,
                    attempts=tuple(tried),
                )

            logger.warning(
                "mail_transport_failed", transport=transport.name, to=message.to, error=result.error
            )
            errors.append(f"{transport.name}: {result.error}")

        return SendResult(
            success=False,
            transport=tried[-1],
            error="; ".join(errors),
            attempts=tuple(tried),
        )


def build_notifier_from_config() -> Notifier:
    """Build the Notifier from environment settings: Resend first, then SMTP."""
    transports: list[MailTransport] = []
    if config.RESEND_API_KEY:
        transports.append(ResendTransport(config.RESEND_API_KEY))
    if config.SMTP_HOST:
        transports.append(
            SmtpTransport(
                host=config.SMTP_HOST,
                port=config.SMTP_PORT,
                username=config.SMTP_USERNAME,
                password=config.SMTP_PASSWORD,
                use_tls=config.SMTP_USE_TLS,
            )
        )
    logger.info("notifier_configured", transports=[t.name for t in transports])
    return Notifier(transports, default_from=config.MAIL_FROM)
