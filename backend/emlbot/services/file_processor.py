"""
File pipeline: one shared mail file in, at most one threaded reply out.

    classify -> acquire lock -> resolve thread -> download -> extract
             -> store ContentEntry -> post preview -> finalize

Unsupported files return before anything is read from or written to the
store, and before any Slack call is made. Everything after the lock is
acquired runs inside a single try/finally so the coordinator is finalized on
every exit path. Failures become a short notice in the resolved thread;
nothing propagates back to the HTTP layer.
"""

import logging
from enum import Enum
from typing import Optional

from slack_sdk.errors import SlackApiError

from emlbot.context import AppContext
from emlbot.errors import DownloadError, EmlBotError, FileTooLargeError, StoreUnavailableError
from emlbot.models.document import ContentEntry, MailKind
from emlbot.models.slack_event import FileReference, ShareLocation
from emlbot.services.composer import (
    FAILURE_NOTICE,
    SKIPPED_NOTICE,
    TOO_LARGE_NOTICE,
    truncate_chars,
)
from emlbot.services.extractor import classify_mail, extract_document

logger = logging.getLogger(__name__)


class ProcessOutcome(str, Enum):
    UNSUPPORTED = "unsupported"
    DUPLICATE = "duplicate"
    UNRESOLVED = "unresolved"
    CHANNEL_NOT_ALLOWED = "channel_not_allowed"
    POSTED = "posted"
    SKIPPED = "skipped"
    FAILED = "failed"


def content_key(timestamp_ms: int, file_id: str) -> str:
    return f"{timestamp_ms}:{file_id}"


def _lookup_file_info(ctx: AppContext, file_id: str) -> Optional[dict]:
    """files.info, or None on an API or transport error."""
    try:
        return ctx.slack.file_info(file_id) or None
    except (SlackApiError, OSError) as e:
        logger.warning(f"files.info failed for {file_id}: {e}")
        return None


def _post_notice(ctx: AppContext, location: Optional[ShareLocation], notice: str, file_id: str) -> None:
    """Best-effort notice in the reply thread."""
    if location is None:
        return
    try:
        ctx.composer().post_notice(location, notice)
    except (SlackApiError, OSError) as e:
        logger.warning(f"Failed to post notice for {file_id}: {e}")


def process_file(
    ctx: AppContext,
    file_ref: FileReference,
    channel_hint: Optional[str] = None,
    thread_hint: Optional[str] = None,
) -> ProcessOutcome:
    """
    Process one shared file end to end.

    Args:
        ctx: Application context (stores, Slack client, settings).
        file_ref: The file as announced by the event; may hold only the ID.
        channel_hint: Channel named by the event, if any.
        thread_hint: Thread anchor named by the event, if any.

    Returns:
        The ProcessOutcome. Never raises.
    """
    file_id = file_ref.id

    # file_shared events carry only the ID; the name is needed to classify.
    file_info: Optional[dict] = None
    if not file_ref.name:
        file_info = _lookup_file_info(ctx, file_id)
        if file_info:
            file_ref = file_ref.merged_with(file_info)

    kind = classify_mail(file_ref.name, file_ref.mimetype)
    if kind is MailKind.UNSUPPORTED:
        logger.debug(f"Ignoring {file_id} ({file_ref.name!r}): not a mail file")
        return ProcessOutcome.UNSUPPORTED

    coordinator = ctx.coordinator()
    try:
        acquired = coordinator.try_acquire(file_id)
    except StoreUnavailableError as e:
        logger.error(f"Coordination store unavailable for {file_id}: {e}")
        return ProcessOutcome.FAILED
    if not acquired:
        return ProcessOutcome.DUPLICATE

    succeeded = False
    location: Optional[ShareLocation] = None
    try:
        resolution = ctx.resolver().resolve(
            file_id,
            channel_hint=channel_hint,
            thread_hint=thread_hint,
            initial_info=file_info,
        )
        if resolution is None:
            return ProcessOutcome.UNRESOLVED
        location = resolution.location
        if resolution.file_info:
            file_ref = file_ref.merged_with(resolution.file_info)

        if not ctx.settings.channel_allowed(location.channel):
            logger.info(f"Channel {location.channel} is not in ALLOWED_CHANNELS; skipping {file_id}")
            return ProcessOutcome.CHANNEL_NOT_ALLOWED

        if not file_ref.download_url:
            info = _lookup_file_info(ctx, file_id)
            if info:
                file_ref = file_ref.merged_with(info)

        limit = ctx.settings.max_download_bytes
        if file_ref.size is not None and file_ref.size > limit:
            raise FileTooLargeError(file_ref.size, limit)
        if not file_ref.download_url:
            raise DownloadError(f"No download URL for {file_id}")

        content = ctx.slack.download_file(file_ref.download_url, limit)
        document = extract_document(content, file_ref.name, file_ref.mimetype)

        if document.skipped:
            logger.info(f"{file_id} is a calendar item; posting skip notice")
            ctx.composer().post_notice(location, SKIPPED_NOTICE)
            succeeded = True
            return ProcessOutcome.SKIPPED

        if document.degraded:
            logger.info(f"{file_id} extracted with byte-scan fallback")

        entry = ContentEntry(
            text=truncate_chars(document.text, ctx.settings.max_stored_chars),
            filename=file_ref.name or file_id,
        )
        key = content_key(int(ctx.clock() * 1000), file_id)
        ctx.content_store.set(key, entry.model_dump())

        ctx.composer().post_preview(location, key, entry)
        logger.info(f"Posted preview for {file_id} in {location.channel}/{location.thread_ts}")
        succeeded = True
        return ProcessOutcome.POSTED

    except FileTooLargeError as e:
        logger.warning(f"{file_id}: {e}")
        _post_notice(ctx, location, TOO_LARGE_NOTICE.format(size=e.size, limit=e.limit), file_id)
        return ProcessOutcome.FAILED
    except (EmlBotError, SlackApiError) as e:
        logger.warning(f"Processing failed for {file_id}: {e}")
        _post_notice(ctx, location, FAILURE_NOTICE, file_id)
        return ProcessOutcome.FAILED
    except Exception as e:
        logger.error(f"Unexpected error processing {file_id}: {e}", exc_info=True)
        _post_notice(ctx, location, FAILURE_NOTICE, file_id)
        return ProcessOutcome.FAILED
    finally:
        try:
            coordinator.finalize(file_id, succeeded)
        except StoreUnavailableError as e:
            logger.error(f"Failed to finalize coordination records for {file_id}: {e}")
