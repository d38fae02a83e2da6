"""
Outbound mail: message composition and the SMTP transport.

MailTransport wraps aiosmtplib so the rest of the code only ever calls
`await transport.send(message)`. Each send opens its own SMTP connection,
which keeps concurrent sends (bounded by the ConcurrencyLimiter) independent.

Port 465 means implicit TLS; any other port negotiates STARTTLS when the
server offers it.
"""

import logging
import mimetypes
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Iterable, Optional

import aiosmtplib

from config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def mime_parts(self) -> tuple[str, str]:
        content_type = self.content_type or mimetypes.guess_type(self.filename)[0] or "application/octet-stream"
        maintype, _, subtype = content_type.partition("/")
        return maintype, subtype or "octet-stream"


def format_sender(email: str, name: Optional[str] = None) -> str:
    return formataddr((name, email)) if name else email


def dedupe_addresses(addresses: Iterable[str]) -> list[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for address in addresses:
        address = (address or "").strip()
        key = address.lower()
        if not address or key in seen:
            continue
        seen.add(key)
        result.append(address)
    return result


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    html: str,
    text: str,
    cc: Iterable[str] = (),
    attachment: Optional[Attachment] = None,
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    cc_list = dedupe_addresses(cc)
    if cc_list:
        message["Cc"] = ", ".join(cc_list)
    message["Subject"] = subject
    message["Message-ID"] = make_msgid()

    message.set_content(text)
    message.add_alternative(html, subtype="html")
    if attachment is not None:
        maintype, subtype = attachment.mime_parts
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype,
            filename=attachment.filename,
        )
    return message


class MailTransport:

    def __init__(self, host: str, port: int, username: str, password: str, timeout: float = 30.0):
        self.host = host
        self.port = port
        self._username = username
        self._password = password
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailTransport":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            timeout=settings.SMTP_TIMEOUT,
        )

    async def send(self, message: EmailMessage) -> None:
        """
        Deliver one message. Recipients come from its To/Cc headers.

        Raises:
            aiosmtplib.SMTPException (and subclasses) on any delivery failure.
        """
        implicit_tls = self.port == 465
        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self._username or None,
            password=self._password or None,
            use_tls=implicit_tls,
            start_tls=False if implicit_tls else None,
            timeout=self._timeout,
        )
        logger.debug(f"Delivered message to {message['To']} via {self.host}:{self.port}")
