"""
Recipient senders — "send one email to recipient R".

The scheduler calls sender.send(unit) without knowing what's behind it.
Same Strategy pattern as the result materializers:
- AbstractRecipientSender = interface
- MailSender, DryRunSender = implementations

Contract: return normally when the message was accepted, raise anything on
failure. The RecipientExecutor turns that exception into an "error" outcome,
so senders never need their own try/except.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

from jobs.record import RecipientUnit
from services.mailer import Attachment, MailTransport, build_message, dedupe_addresses
from services.templating import html_to_text

logger = logging.getLogger(__name__)

HtmlRenderer = Callable[[RecipientUnit], str]


class AbstractRecipientSender(ABC):

    @abstractmethod
    async def send(self, recipient: RecipientUnit) -> None:
        """
        Deliver the message for one recipient.

        Raises:
            Any exception → recorded as a per-recipient failure; the job continues.
        """
        ...


class MailSender(AbstractRecipientSender):
    """
    Builds and delivers one personalized message per recipient.

    CC list = the recipient's own CCs (e.g. their account rep) followed by
    default_cc, de-duplicated case-insensitively.
    """

    def __init__(
        self,
        transport: MailTransport,
        *,
        sender: str,
        subject: str,
        render_html: HtmlRenderer,
        attachment: Optional[Attachment] = None,
        default_cc: Iterable[str] = (),
    ):
        self._transport = transport
        self._sender = sender
        self._subject = subject
        self._render_html = render_html
        self._attachment = attachment
        self._default_cc = tuple(default_cc)

    def cc_for(self, recipient: RecipientUnit) -> list[str]:
        return dedupe_addresses([*recipient.cc, *self._default_cc])

    async def send(self, recipient: RecipientUnit) -> None:
        html = self._render_html(recipient)
        message = build_message(
            sender=self._sender,
            to=recipient.email,
            subject=self._subject,
            html=html,
            text=html_to_text(html),
            cc=self.cc_for(recipient),
            attachment=self._attachment,
        )
        await self._transport.send(message)


class DryRunSender(AbstractRecipientSender):
    """Accepts every recipient without touching SMTP. Used for rehearsals."""

    def __init__(self, render_html: Optional[HtmlRenderer] = None):
        self._render_html = render_html
        self.rendered_count = 0

    async def send(self, recipient: RecipientUnit) -> None:
        if self._render_html is not None:
            # Rendering still runs so template problems surface in a dry run
            self._render_html(recipient)
            self.rendered_count += 1
        logger.info(f"[dry run] would send to {recipient.email}")
