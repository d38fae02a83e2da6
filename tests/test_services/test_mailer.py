"""Tests for message composition and the senders built on it."""

import pytest

from jobs.record import RecipientUnit
from services.mailer import Attachment, MailTransport, build_message, dedupe_addresses, format_sender
from worker.senders import DryRunSender, MailSender
from tests.helpers import FakeTransport


def test_dedupe_addresses_is_case_insensitive_and_ordered():
    assert dedupe_addresses(["A@x.com", "b@x.com", "a@X.com", "", "  ", "c@x.com"]) == [
        "A@x.com", "b@x.com", "c@x.com"
    ]


def test_format_sender():
    assert format_sender("me@example.com") == "me@example.com"
    assert format_sender("me@example.com", "Me") == "Me <me@example.com>"


def test_build_message_has_text_html_and_attachment():
    message = build_message(
        sender="me@example.com",
        to="you@example.com",
        subject="Hello",
        html="<p>Hi</p>",
        text="Hi",
        cc=["rep@example.com", "REP@example.com"],
        attachment=Attachment("brochure.pdf", b"%PDF-1.4"),
    )

    assert message["To"] == "you@example.com"
    assert message["Cc"] == "rep@example.com"
    assert message["Message-ID"]
    assert message.get_body(("plain",)).get_content().strip() == "Hi"
    assert "<p>Hi</p>" in message.get_body(("html",)).get_content()
    [attachment] = list(message.iter_attachments())
    assert attachment.get_filename() == "brochure.pdf"
    assert attachment.get_content_type() == "application/pdf"


def test_build_message_without_cc_has_no_cc_header():
    message = build_message(sender="me@example.com", to="you@example.com", subject="s", html="<p>x</p>", text="x")
    assert message["Cc"] is None


def test_transport_from_settings(test_settings):
    transport = MailTransport.from_settings(test_settings)
    assert (transport.host, transport.port) == ("smtp.test", 587)


@pytest.mark.asyncio
async def test_mail_sender_personalizes_and_merges_cc():
    transport = FakeTransport()
    sender = MailSender(
        transport,
        sender="Me <me@example.com>",
        subject="Hello",
        render_html=lambda unit: f"<p>Hi {unit.metadata['firstName']}</p>",
        default_cc=["ops@example.com", "rep@example.com"],
    )
    unit = RecipientUnit(
        name="Asha Rao", email="asha@example.com", cc=("rep@example.com",), metadata={"firstName": "Asha"}
    )

    await sender.send(unit)

    [message] = transport.sent
    assert message["To"] == "asha@example.com"
    assert message["Cc"] == "rep@example.com, ops@example.com"
    assert "Hi Asha" in message.get_body(("html",)).get_content()
    assert message.get_body(("plain",)).get_content().strip() == "Hi Asha"


@pytest.mark.asyncio
async def test_mail_sender_raises_transport_errors():
    transport = FakeTransport(fail_for={"asha@example.com": ConnectionError("refused")})
    sender = MailSender(transport, sender="me@example.com", subject="s", render_html=lambda u: "<p>x</p>")

    with pytest.raises(ConnectionError):
        await sender.send(RecipientUnit(name="Asha", email="asha@example.com"))


@pytest.mark.asyncio
async def test_dry_run_sender_renders_but_sends_nothing():
    rendered = []
    sender = DryRunSender(render_html=lambda unit: rendered.append(unit.email) or "<p>x</p>")

    await sender.send(RecipientUnit(name="Asha", email="asha@example.com"))

    assert rendered == ["asha@example.com"]
    assert sender.rendered_count == 1
