"""
Slack router.

Endpoints:
  POST /slack/events   — Events API deliveries and interactive actions
                         (auth: X-Slack-Signature)
  GET  /slack/events   — liveness probe
  POST /slack/preview  — .eml -> preview text without posting; only when
                         DEBUG_PREVIEW_ENABLED (auth: X-Slack-Signature)

Every authenticated, well-formed delivery is answered 200 {"ok": true}, even
when processing fails, so Slack does not retry. The one exception is the
url_verification handshake, which echoes its challenge as text/plain and is
answered before the signature is checked.
"""

import base64
import binascii
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ValidationError
from slack_sdk.errors import SlackApiError

from emlbot.auth import verify_request_or_401
from emlbot.context import AppContext, get_context
from emlbot.errors import EmlBotError, UnsupportedDocumentError
from emlbot.models.slack_event import ClassifiedEvent, EventKind, InteractionPayload
from emlbot.services.composer import EXPORT_BYTE_LIMIT, SKIPPED_NOTICE, truncate_chars, truncate_utf8_bytes
from emlbot.services.diagnostics import reply_to_mention
from emlbot.services.event_router import (
    classify_event,
    handshake_challenge,
    interaction_from_payload,
    is_form_encoded,
    parse_interaction_body,
    parse_json_body,
)
from emlbot.services.extractor import extract_document
from emlbot.services.file_processor import process_file

logger = logging.getLogger(__name__)

router = APIRouter()

_OK = {"ok": True}


class PreviewRequest(BaseModel):
    eml_base64: str
    filename: Optional[str] = None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _handle_interaction(ctx: AppContext, interaction: InteractionPayload) -> None:
    try:
        ctx.composer().handle_action(interaction)
    except (EmlBotError, SlackApiError) as e:
        logger.warning(f"Action {interaction.action_id} on {interaction.value_ref} failed: {e}")
    except Exception as e:
        logger.error(f"Unexpected error handling {interaction.action_id} on {interaction.value_ref}: {e}", exc_info=True)


async def _dispatch_files(
    ctx: AppContext,
    event: ClassifiedEvent,
    background_tasks: BackgroundTasks,
) -> None:
    for file_ref in event.files:
        if ctx.settings.async_processing:
            background_tasks.add_task(process_file, ctx, file_ref, event.channel_hint, event.thread_hint)
        else:
            outcome = await run_in_threadpool(process_file, ctx, file_ref, event.channel_hint, event.thread_hint)
            logger.info(f"{event.kind.value} {file_ref.id}: {outcome.value}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    ctx: AppContext = Depends(get_context),
):
    body = await request.body()
    secret = ctx.settings.slack_signing_secret

    retry_num = request.headers.get("X-Slack-Retry-Num")
    if retry_num:
        logger.debug(f"Slack retry #{retry_num} ({request.headers.get('X-Slack-Retry-Reason')})")

    if is_form_encoded(request.headers.get("content-type")):
        verify_request_or_401(request, body, secret)
        payload = parse_interaction_body(body)
        if payload is None:
            raise HTTPException(status_code=400, detail="Malformed interaction payload")
        interaction = interaction_from_payload(payload)
        if interaction is None:
            logger.debug(f"Ignoring interaction of type {payload.get('type')!r}")
            return _OK
        await run_in_threadpool(_handle_interaction, ctx, interaction)
        return _OK

    envelope = parse_json_body(body)
    if envelope is not None:
        challenge = handshake_challenge(envelope)
        if challenge:
            return PlainTextResponse(challenge)

    verify_request_or_401(request, body, secret)
    if envelope is None:
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    event = classify_event(envelope)
    if event.kind is EventKind.DIAGNOSTIC_MENTION:
        await run_in_threadpool(reply_to_mention, ctx, event)
    elif event.kind in (EventKind.FILE_SHARE_MESSAGE, EventKind.FILE_SHARED):
        await _dispatch_files(ctx, event, background_tasks)

    return _OK


@router.get("/events")
async def slack_events_alive():
    return {"ok": True, "endpoint": "/slack/events"}


@router.post("/preview")
async def slack_preview(
    request: Request,
    ctx: AppContext = Depends(get_context),
):
    """
    Convert a base64 .eml to the text a preview would hold. Nothing is posted.

    Body: {"eml_base64": "...", "filename": "optional.eml"}
    """
    if not ctx.settings.debug_preview_enabled:
        raise HTTPException(status_code=404, detail="Not Found")

    body = await request.body()
    verify_request_or_401(request, body, ctx.settings.slack_signing_secret)

    try:
        preview_request = PreviewRequest.model_validate_json(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Expected {\"eml_base64\": ..., \"filename\"?: ...}")

    try:
        content = base64.b64decode(preview_request.eml_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="eml_base64 is not valid base64")

    filename = preview_request.filename or "preview.eml"
    try:
        document = await run_in_threadpool(extract_document, content, filename)
    except UnsupportedDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    text = SKIPPED_NOTICE if document.skipped else truncate_chars(document.text, ctx.settings.preview_char_limit)
    return {"ok": True, "preview": truncate_utf8_bytes(text, EXPORT_BYTE_LIMIT)}
