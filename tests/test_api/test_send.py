"""
API integration tests for /send endpoints.

These use the test HTTP client from conftest.py: in-memory dispatch state,
a temp SQLite DB and a FakeTransport instead of SMTP. Jobs really run in the
background, so tests poll until the job reaches a terminal status.
"""

import asyncio
import json

import pytest

from api.dependencies import get_settings
from config.settings import Settings
from jobs.results import XLSX_MEDIA_TYPE
from tests.helpers import wait_for_terminal
from tests.workbooks import build_workbook, read_rows

BODY = "Hi {{ firstName }},\n\nThanks for your time."


def _upload(rows, **data):
    files = {"workbook": ("recipients.xlsx", build_workbook(rows), XLSX_MEDIA_TYPE)}
    form = {"body": BODY, "subject": "Hello"}
    form.update({k: str(v) for k, v in data.items()})
    return {"files": files, "data": form}


def _parse_sse(text: str) -> list[tuple[str, dict]]:
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


ROWS = [
    ["Asha Rao", "asha@example.com", "Ravi", "ravi@example.com"],
    ["Ben Ortiz", "ben@example.com", None, None],
]


@pytest.mark.asyncio
async def test_send_workbook_completes_and_annotates_result(client, fake_transport):
    response = await client.post("/send/", **_upload(ROWS))

    assert response.status_code == 201
    data = response.json()
    assert data["total"] == 2
    assert data["status"] == "queued"

    job = await wait_for_terminal(client, data["job_id"])
    assert job["status"] == "completed"
    assert (job["processed"], job["sent"], job["errors"]) == (2, 2, 0)
    assert job["result_ready"] is True
    assert [m["To"] for m in fake_transport.sent] == ["asha@example.com", "ben@example.com"]
    assert fake_transport.sent[0]["Cc"] == "ravi@example.com"
    assert "Hi Asha" in fake_transport.sent[0].get_body(("html",)).get_content()

    result = await client.get(f"/send/{data['job_id']}/result")
    assert result.status_code == 200
    assert f"updated-{data['job_id']}.xlsx" in result.headers["content-disposition"]
    assert [r["EmailStatus"] for r in read_rows(result.content)] == ["Accepted", "Accepted"]


@pytest.mark.asyncio
async def test_recipient_failure_is_reported_not_fatal(client, fake_transport):
    fake_transport.fail_for["ben@example.com"] = ConnectionError("SMTP timeout")

    job_id = (await client.post("/send/", **_upload(ROWS))).json()["job_id"]
    job = await wait_for_terminal(client, job_id)

    assert job["status"] == "completed"
    assert (job["sent"], job["errors"]) == (1, 1)
    assert job["failures"] == [{"client_name": "Ben Ortiz", "client_email": "ben@example.com", "error": "SMTP timeout"}]
    assert job["error_message"] is None
    rows = read_rows((await client.get(f"/send/{job_id}/result")).content)
    assert rows[1]["EmailStatus"] == "Error"
    assert rows[1]["EmailError"] == "SMTP timeout"


@pytest.mark.asyncio
async def test_workbook_without_recipients_is_rejected(client):
    response = await client.post("/send/", **_upload([]))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unreadable_workbook_is_rejected(client):
    response = await client.post(
        "/send/",
        files={"workbook": ("bad.xlsx", b"not a workbook", XLSX_MEDIA_TYPE)},
        data={"body": BODY},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_smtp_not_configured_creates_no_job(app, client):
    app.dependency_overrides[get_settings] = lambda: Settings(SMTP_HOST="", DEFAULT_SENDER_EMAIL="me@example.com")

    response = await client.post("/send/", **_upload(ROWS))

    assert response.status_code == 500
    assert response.json()["detail"] == "SMTP environment variables not configured"
    assert (await client.get("/send/history")).json() == {"jobs": []}


@pytest.mark.asyncio
async def test_dry_run_needs_no_smtp(app, client, fake_transport):
    app.dependency_overrides[get_settings] = lambda: Settings(
        SMTP_HOST="", DEFAULT_SENDER_EMAIL="me@example.com", RESULT_TIMEZONE="UTC"
    )

    response = await client.post("/send/", **_upload(ROWS, dry_run="true", batch_delay_seconds=600))
    job = await wait_for_terminal(client, response.json()["job_id"])

    assert job["status"] == "completed"
    assert job["sent"] == 2
    assert job["batch_delay_seconds"] == 0.0
    assert fake_transport.sent == []


@pytest.mark.asyncio
async def test_send_recipient_list(client, fake_transport):
    response = await client.post("/send/recipients", json={
        "recipients": [
            {"name": "Asha Rao", "email": "asha@example.com", "company_name": "Acme"},
            {"name": "Ben", "email": "ben@example.com", "cc": ["rep@example.com"]},
        ],
        "sender": "me@example.com",
        "sender_name": "Me",
        "subject": "Hello",
        "body": "Hi {{ firstName }} at {{ companyName }}",
    })

    assert response.status_code == 201
    job_id = response.json()["job_id"]
    job = await wait_for_terminal(client, job_id)
    assert job["sent"] == 2
    assert fake_transport.sent[0]["From"] == "Me <me@example.com>"
    assert "Hi Asha at Acme" in fake_transport.sent[0].get_body(("html",)).get_content()
    assert fake_transport.sent[1]["Cc"] == "rep@example.com"

    result = await client.get(f"/send/{job_id}/result")
    assert f"report-{job_id}.xlsx" in result.headers["content-disposition"]


@pytest.mark.asyncio
async def test_send_recipient_list_validation(client):
    response = await client.post("/send/recipients", json={
        "recipients": [{"name": "Asha", "email": "not-an-email"}],
        "sender": "me@example.com",
        "subject": "Hello",
        "body": "Hi",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_job_is_404_everywhere(client):
    assert (await client.get("/send/nope")).status_code == 404
    assert (await client.get("/send/nope/stream")).status_code == 404
    assert (await client.post("/send/nope/cancel")).status_code == 404
    assert (await client.get("/send/nope/result")).status_code == 404


@pytest.mark.asyncio
async def test_result_not_ready_is_409(client):
    response = await client.post("/send/", **_upload(ROWS, batch_delay_seconds=3600))
    job_id = response.json()["job_id"]

    result = await client.get(f"/send/{job_id}/result")

    assert result.status_code == 409
    assert (await client.get(f"/send/{job_id}")).json()["result_ready"] is False


@pytest.mark.asyncio
async def test_cancel_running_job(client):
    rows = [[f"Client {i}", f"client{i}@example.com", None, None] for i in range(5)]
    job_id = (await client.post("/send/", **_upload(rows, batch_delay_seconds=0.2))).json()["job_id"]

    while (await client.get(f"/send/{job_id}")).json()["processed"] < 1:
        await asyncio.sleep(0.01)

    first = await client.post(f"/send/{job_id}/cancel")
    second = await client.post(f"/send/{job_id}/cancel")
    assert first.status_code == 200
    assert first.json() == {"ok": True, "job_id": job_id, "status": "running", "cancel_requested": True}
    assert second.json()["cancel_requested"] is True

    job = await wait_for_terminal(client, job_id)
    assert job["status"] == "cancelled"
    assert 1 <= job["processed"] <= 2
    statuses = [r["EmailStatus"] for r in read_rows((await client.get(f"/send/{job_id}/result")).content)]
    assert statuses.count("Cancelled") == 5 - job["processed"]


@pytest.mark.asyncio
async def test_stream_of_finished_job_replays_then_completes(client):
    job_id = (await client.post("/send/", **_upload(ROWS))).json()["job_id"]
    await wait_for_terminal(client, job_id)

    response = await client.get(f"/send/{job_id}/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(response.text)
    assert [kind for kind, _ in events] == ["progress", "complete"]
    assert events[0][1]["status"] == events[1][1]["status"] == "completed"


@pytest.mark.asyncio
async def test_stream_follows_live_job_to_completion(client):
    rows = [[f"Client {i}", f"client{i}@example.com", None, None] for i in range(3)]
    job_id = (await client.post("/send/", **_upload(rows))).json()["job_id"]

    response = await client.get(f"/send/{job_id}/stream")

    events = _parse_sse(response.text)
    kinds = [kind for kind, _ in events]
    assert kinds[-1] == "complete"
    assert kinds.count("complete") == 1
    for _, snapshot in events:
        assert snapshot["processed"] == snapshot["sent"] + snapshot["errors"]
    assert events[-1][1]["processed"] == 3
    assert events[-1][1]["result_ready"] is True


@pytest.mark.asyncio
async def test_history_lists_jobs_in_creation_order(client):
    ids = []
    for _ in range(3):
        response = await client.post("/send/", **_upload(ROWS, dry_run="true"))
        ids.append(response.json()["job_id"])
    for job_id in ids:
        await wait_for_terminal(client, job_id)

    history = (await client.get("/send/history")).json()["jobs"]

    assert [job["job_id"] for job in history] == ids
    assert all(job["status"] == "completed" for job in history)
    assert "error_message" not in history[0]
