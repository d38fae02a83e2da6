"""Fakes and small helpers shared by the test modules."""

import asyncio
from email.message import EmailMessage
from typing import Optional

from jobs.record import RecipientUnit
from worker.senders import AbstractRecipientSender

TERMINAL = ("completed", "failed", "cancelled")


class FakeTransport:
    """Stands in for MailTransport: records messages, raises for chosen addresses."""

    def __init__(self, fail_for: Optional[dict[str, Exception]] = None):
        self.sent: list[EmailMessage] = []
        self.fail_for = fail_for or {}

    async def send(self, message: EmailMessage) -> None:
        error = self.fail_for.get(message["To"])
        if error is not None:
            raise error
        self.sent.append(message)


class FakeSender(AbstractRecipientSender):
    """Recipient sender for scheduler tests: records calls, fails for chosen emails."""

    def __init__(self, fail_for: Optional[dict[str, Exception]] = None, on_send=None):
        self.calls: list[str] = []
        self.fail_for = fail_for or {}
        self.on_send = on_send

    async def send(self, recipient: RecipientUnit) -> None:
        self.calls.append(recipient.email)
        if self.on_send is not None:
            self.on_send(recipient)
        error = self.fail_for.get(recipient.email)
        if error is not None:
            raise error


def make_recipients(count: int) -> list[RecipientUnit]:
    return [
        RecipientUnit(name=f"Client {i}", email=f"client{i}@example.com", source_ref=i + 2)
        for i in range(count)
    ]


async def wait_for_terminal(client, job_id: str, timeout: float = 5.0) -> dict:
    """Poll GET /send/{job_id} until the job reaches a terminal status."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        data = (await client.get(f"/send/{job_id}")).json()
        if data["status"] in TERMINAL:
            return data
        if loop.time() > deadline:
            raise AssertionError(f"Job {job_id} still {data['status']} after {timeout}s")
        await asyncio.sleep(0.01)
