"""
Dispatch job endpoints.

POST /send/                  → Upload a recipient workbook and start a job
POST /send/recipients        → Start a job from a JSON recipient list
GET  /send/history           → Recent jobs, newest last
GET  /send/{job_id}          → Current progress snapshot
GET  /send/{job_id}/stream   → Server-Sent Events: progress… then complete
POST /send/{job_id}/cancel   → Ask a running job to stop
GET  /send/{job_id}/result   → Download the result spreadsheet

Starting a job never waits for it: the handler registers the job, launches
the scheduler in the background and answers 201 with the job id. Everything
after that is observed through the poll, stream and history endpoints.
"""

import asyncio
import base64
import binascii
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from api.dependencies import get_dispatcher, get_mail_transport, get_registry, get_results, get_settings
from api.schemas.job import (
    CancelResponse,
    DispatchStarted,
    JobHistoryEntry,
    JobHistoryResponse,
    JobProgressResponse,
    RecipientListDispatch,
)
from config.settings import Settings
from jobs.record import JobRecord, RecipientUnit
from jobs.registry import JobRegistry
from jobs.results import ReportMaterializer, ResultStore, WorkbookMaterializer
from services.dispatch import Dispatcher, make_renderer
from services.mailer import Attachment, MailTransport, format_sender
from services.workbook import WorkbookError, parse_recipient_workbook
from worker.senders import AbstractRecipientSender, DryRunSender, MailSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/send", tags=["send"])

SMTP_NOT_CONFIGURED = "SMTP environment variables not configured"


def snapshot_response(record: JobRecord, results: ResultStore) -> JobProgressResponse:
    response = JobProgressResponse.model_validate(record)
    response.result_ready = results.has(record.job_id)
    return response


def format_sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def build_sender(
    config: Settings,
    transport: MailTransport,
    *,
    sender: str,
    sender_name: Optional[str],
    subject: str,
    body: str,
    attachment: Optional[Attachment],
    dry_run: bool,
) -> AbstractRecipientSender:
    renderer = make_renderer(body)
    if dry_run:
        return DryRunSender(render_html=renderer)
    return MailSender(
        transport,
        sender=format_sender(sender, sender_name),
        subject=subject,
        render_html=renderer,
        attachment=attachment,
        default_cc=config.DEFAULT_CC_ADDRESSES,
    )


def _pacing(config: Settings, batch_size: Optional[int], batch_delay_seconds: Optional[float], dry_run: bool):
    size = batch_size if batch_size is not None else config.batch_size
    delay = batch_delay_seconds if batch_delay_seconds is not None else config.batch_delay_seconds
    if dry_run:
        delay = 0.0
    return max(1, size), max(0.0, delay)


@router.post("/", response_model=DispatchStarted, status_code=201)
async def send_workbook(
    workbook: UploadFile = File(..., description="Recipient spreadsheet (.xlsx)"),
    attachment: Optional[UploadFile] = File(None, description="File attached to every message"),
    body: str = Form(..., min_length=1),
    sender: Optional[str] = Form(None),
    sender_name: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    batch_size: Optional[int] = Form(None, ge=1, le=1000),
    batch_delay_seconds: Optional[float] = Form(None, ge=0),
    dry_run: bool = Form(False),
    config: Settings = Depends(get_settings),
    transport: MailTransport = Depends(get_mail_transport),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> DispatchStarted:
    """
    Start a job from an uploaded spreadsheet.

    Rows already marked Accepted are skipped, so re-uploading the result file
    of a cancelled job sends only what is left. The result artifact is the
    same spreadsheet with EmailStatus / EmailTimestamp / EmailError filled in.
    """
    if not dry_run and not config.smtp_configured:
        raise HTTPException(status_code=500, detail=SMTP_NOT_CONFIGURED)

    from_address = sender or config.DEFAULT_SENDER_EMAIL
    if not from_address:
        raise HTTPException(status_code=400, detail="Sender email is required")

    try:
        parsed = parse_recipient_workbook(await workbook.read())
    except WorkbookError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not parsed.recipients:
        raise HTTPException(status_code=400, detail="No recipients to send to")

    mail_attachment = None
    if attachment is not None and attachment.filename:
        mail_attachment = Attachment(
            filename=attachment.filename,
            content=await attachment.read(),
            content_type=attachment.content_type,
        )

    size, delay = _pacing(config, batch_size, batch_delay_seconds, dry_run)
    record = dispatcher.start(
        parsed.recipients,
        build_sender(
            config,
            transport,
            sender=from_address,
            sender_name=sender_name,
            subject=subject or config.DEFAULT_SUBJECT,
            body=body,
            attachment=mail_attachment,
            dry_run=dry_run,
        ),
        batch_size=size,
        batch_delay_seconds=delay,
        materializer=WorkbookMaterializer(parsed, config.RESULT_TIMEZONE),
    )
    logger.info(
        f"Workbook job {record.job_id}: {record.total} recipients, "
        f"{parsed.skipped_rows} rows skipped{' (dry run)' if dry_run else ''}"
    )
    return DispatchStarted(job_id=record.job_id, total=record.total)


@router.post("/recipients", response_model=DispatchStarted, status_code=201)
async def send_recipient_list(
    request: RecipientListDispatch,
    config: Settings = Depends(get_settings),
    transport: MailTransport = Depends(get_mail_transport),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> DispatchStarted:
    """Start a job from a JSON recipient list; the artifact is a fresh report sheet."""
    if not request.dry_run and not config.smtp_configured:
        raise HTTPException(status_code=500, detail=SMTP_NOT_CONFIGURED)

    mail_attachment = None
    if request.attachment_base64:
        try:
            content = base64.b64decode(request.attachment_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="attachment_base64 is not valid base64")
        mail_attachment = Attachment(filename=request.attachment_filename, content=content)

    recipients = [
        RecipientUnit(
            name=item.name,
            email=str(item.email),
            cc=tuple(str(address) for address in item.cc),
            metadata={
                "clientName": item.name,
                "firstName": item.first_name or item.name.split()[0],
                "lastName": item.last_name or "",
                "companyName": item.company_name or "",
            },
        )
        for item in request.recipients
    ]

    size, delay = _pacing(config, request.batch_size, request.batch_delay_seconds, request.dry_run)
    record = dispatcher.start(
        recipients,
        build_sender(
            config,
            transport,
            sender=str(request.sender),
            sender_name=request.sender_name,
            subject=request.subject,
            body=request.body,
            attachment=mail_attachment,
            dry_run=request.dry_run,
        ),
        batch_size=size,
        batch_delay_seconds=delay,
        materializer=ReportMaterializer(config.RESULT_TIMEZONE),
    )
    return DispatchStarted(job_id=record.job_id, total=record.total)


@router.get("/history", response_model=JobHistoryResponse)
async def job_history(registry: JobRegistry = Depends(get_registry)) -> JobHistoryResponse:
    """Most recent jobs in creation order, embedded lists trimmed."""
    return JobHistoryResponse(
        jobs=[JobHistoryEntry.model_validate(record) for record in registry.list_recent()]
    )


@router.get("/{job_id}", response_model=JobProgressResponse)
async def get_job(
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
    results: ResultStore = Depends(get_results),
) -> JobProgressResponse:
    record = registry.get(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")
    return snapshot_response(record, results)


@router.get("/{job_id}/stream")
async def stream_job(
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
    results: ResultStore = Depends(get_results),
) -> StreamingResponse:
    """
    Live progress as Server-Sent Events.

    The first event is always the current snapshot. After that, one
    `progress` event per update and a single `complete` event when the job
    ends, then the stream closes. Joining a finished job yields one
    `progress` and the `complete` straight away.
    """
    if registry.get(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")

    async def event_stream() -> AsyncGenerator[str, None]:
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = registry.subscribe(
            job_id,
            lambda snapshot: queue.put_nowait(("progress", snapshot)),
            lambda snapshot: queue.put_nowait(("complete", snapshot)),
        )
        if unsubscribe is None:
            return
        try:
            while True:
                event, snapshot = await queue.get()
                yield format_sse(event, snapshot_response(snapshot, results).model_dump_json())
                if event == "complete":
                    break
        finally:
            # Client went away or the job ended; either way stop receiving
            unsubscribe()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/{job_id}/cancel", response_model=CancelResponse)
async def cancel_job(
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
) -> CancelResponse:
    """
    Request cancellation. Safe to call repeatedly.

    The job stops at its next checkpoint (before the next recipient), so the
    status here is usually still `running`; watch the stream for the end.
    """
    record = registry.request_cancel(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")
    return CancelResponse(
        job_id=record.job_id,
        status=record.status,
        cancel_requested=record.cancel_requested,
    )


@router.get("/{job_id}/result")
async def download_result(
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
    results: ResultStore = Depends(get_results),
) -> Response:
    if registry.get(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    artifact = results.get(job_id)
    if artifact is None:
        raise HTTPException(status_code=409, detail="Result not ready")
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )
