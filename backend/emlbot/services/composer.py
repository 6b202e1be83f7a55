"""
Reply rendering and the preview/full toggle.

A processed file gets one threaded reply in the Preview state: the filename,
a one-line excerpt and a "Show full text" button. Buttons carry only the
content-store key; every transition re-reads the stored entry, so toggling
back and forth can never drift from the stored text.

    Preview --show_full--> Full --show_preview--> Preview
                           Full --open_modal----> (modal, state unchanged)
                           Full --send_copy-----> (DM copy, state unchanged)
                           Full --delete_entry--> Removed

A key that is gone from the store (evicted or deleted) renders as
"(content expired)" instead of failing.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from emlbot.config import Settings
from emlbot.errors import StoreUnavailableError
from emlbot.models.document import ContentEntry
from emlbot.models.slack_event import InteractionPayload, ShareLocation
from emlbot.services.kv_store import KeyValueStore
from emlbot.services.slack_client import SlackClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EXCERPT_MAX_CHARS = 120

# Slack section text is capped at 3000 characters; leave headroom.
BLOCK_CHAR_LIMIT = 2900
# Slack messages hold at most 50 blocks; reserve a few for header/controls.
MAX_TEXT_BLOCKS = 45

# Raw-text exports (DM copy, dev preview). Slack rejects message text above
# 40k characters; budget in bytes to be safe.
EXPORT_BYTE_LIMIT = 39_000

TRUNCATED_MARKER = "\n…(truncated)"
BYTE_TRUNCATED_NOTICE = "\n…(truncated)"

EXPIRED_TEXT = "(content expired)"
REMOVED_TEXT = "(content removed)"
EMPTY_EXCERPT = "(no text)"

SKIPPED_NOTICE = "This file is a calendar/meeting item; no mail body to preview."
FAILURE_NOTICE = "Sorry, I couldn't convert this file to text."
TOO_LARGE_NOTICE = "This file is too large to preview ({size} bytes; limit {limit} bytes)."

ACTION_SHOW_FULL = "show_full"
ACTION_SHOW_PREVIEW = "show_preview"
ACTION_OPEN_MODAL = "open_modal"
ACTION_SEND_COPY = "send_copy"
ACTION_DELETE = "delete_entry"

MODAL_TITLE = "Mail text"


# ---------------------------------------------------------------------------
# Text rules
# ---------------------------------------------------------------------------

def make_excerpt(text: str, limit: int = EXCERPT_MAX_CHARS) -> str:
    """First non-blank line, hard-capped at ``limit`` characters plus an ellipsis."""
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line if len(line) <= limit else line[:limit] + "…"
    return EMPTY_EXCERPT


def truncate_chars(text: str, limit: int, marker: str = TRUNCATED_MARKER) -> str:
    """Character-count cap with a trailing marker. Not byte-safe."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def truncate_utf8_bytes(text: str, budget: int, notice: str = BYTE_TRUNCATED_NOTICE) -> str:
    """
    Truncate so the UTF-8 encoding of the result is at most ``budget`` bytes.

    Text that already fits is returned unchanged. Otherwise the longest
    character prefix whose encoding fits in ``budget`` minus the notice is
    found by binary search and the notice is appended. Cutting on character
    boundaries means a multi-byte character is never split.
    """
    if budget <= 0:
        return ""
    if len(text.encode("utf-8")) <= budget:
        return text

    notice_bytes = len(notice.encode("utf-8"))
    if notice_bytes > budget:
        notice = ""
        notice_bytes = 0
    room = budget - notice_bytes

    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if len(text[:mid].encode("utf-8")) <= room:
            lo = mid
        else:
            hi = mid - 1

    return text[:lo] + notice


def chunk_text(text: str, limit: int = BLOCK_CHAR_LIMIT) -> list[str]:
    """
    Split text into chunks of at most ``limit`` characters.

    Breaks on line boundaries where possible; a single line longer than the
    limit is hard-split. Whitespace-only chunks are dropped; Slack rejects
    empty section text.
    """
    chunks: list[str] = []

    def flush(chunk: Optional[str]) -> None:
        if chunk and chunk.strip():
            chunks.append(chunk)

    current: Optional[str] = None
    for line in text.split("\n"):
        while len(line) > limit:
            flush(current)
            current = None
            flush(line[:limit])
            line = line[limit:]

        candidate = line if current is None else f"{current}\n{line}"
        if len(candidate) > limit:
            flush(current)
            current = line
        else:
            current = candidate

    flush(current)
    return chunks or [""]


def paginate(text: str) -> tuple[list[str], bool]:
    """Chunk text for the full view. Returns (chunks, truncated)."""
    chunks = chunk_text(text)
    if len(chunks) <= MAX_TEXT_BLOCKS:
        return chunks, False
    return chunks[:MAX_TEXT_BLOCKS], True


def _escape_mrkdwn(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


# ---------------------------------------------------------------------------
# Block builders
# ---------------------------------------------------------------------------

def _button(text: str, action_id: str, value: str, style: Optional[str] = None) -> dict[str, Any]:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def _title_block(filename: str) -> dict[str, Any]:
    return {
        "type": "section",
        "text": {"type": "mrkdwn", "text": f":envelope_with_arrow: *{_escape_mrkdwn(filename)}*"},
    }


def _plain_section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "plain_text", "text": text or " ", "emoji": False}}


def build_preview_message(key: str, entry: ContentEntry) -> tuple[str, list[dict[str, Any]]]:
    excerpt = make_excerpt(entry.text)
    blocks = [
        _title_block(entry.filename),
        {"type": "context", "elements": [{"type": "plain_text", "text": excerpt, "emoji": False}]},
        {"type": "actions", "elements": [_button("Show full text", ACTION_SHOW_FULL, key)]},
    ]
    return f"{entry.filename}: {excerpt}", blocks


def build_full_message(
    key: str,
    entry: ContentEntry,
    dm_copy_enabled: bool = False,
) -> tuple[str, list[dict[str, Any]]]:
    chunks, truncated = paginate(entry.text)
    blocks: list[dict[str, Any]] = [_title_block(entry.filename)]
    blocks.extend(_plain_section(chunk) for chunk in chunks)
    if truncated:
        blocks.append({"type": "context", "elements": [{"type": "plain_text", "text": "(truncated)"}]})

    controls = [
        _button("Show preview", ACTION_SHOW_PREVIEW, key),
        _button("Open in window", ACTION_OPEN_MODAL, key),
    ]
    if dm_copy_enabled:
        controls.append(_button("Send me a copy", ACTION_SEND_COPY, key))
    controls.append(_button("Delete", ACTION_DELETE, key, style="danger"))
    blocks.append({"type": "actions", "elements": controls})

    return f"{entry.filename}: {make_excerpt(entry.text)}", blocks


def build_notice_message(text: str) -> tuple[str, list[dict[str, Any]]]:
    return text, [_plain_section(text)]


def build_modal_view(entry: ContentEntry, char_limit: int) -> dict[str, Any]:
    body = truncate_chars(entry.text, char_limit)
    return {
        "type": "modal",
        "title": {"type": "plain_text", "text": MODAL_TITLE},
        "close": {"type": "plain_text", "text": "Close"},
        "blocks": [_title_block(entry.filename)] + [_plain_section(c) for c in chunk_text(body)],
    }


def build_copy_text(entry: ContentEntry) -> str:
    return truncate_utf8_bytes(f"{entry.filename}\n\n{entry.text}", EXPORT_BYTE_LIMIT)


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

class ReplyComposer:
    """Posts replies and drives the toggle from interaction payloads."""

    def __init__(self, store: KeyValueStore, slack: SlackClient, settings: Settings) -> None:
        self._store = store
        self._slack = slack
        self._settings = settings

    def load_entry(self, key: str) -> Optional[ContentEntry]:
        """Re-read an entry. A vanished, unreadable or malformed entry is None."""
        try:
            value = self._store.get(key)
        except StoreUnavailableError as e:
            logger.warning(f"Content store read failed for {key}: {e}")
            return None
        if not value:
            return None
        try:
            return ContentEntry(**value)
        except (TypeError, ValidationError) as e:
            logger.warning(f"Malformed content entry {key}: {e}")
            return None

    def post_preview(self, location: ShareLocation, key: str, entry: ContentEntry) -> dict:
        text, blocks = build_preview_message(key, entry)
        return self._slack.post_message(location.channel, text, blocks=blocks, thread_ts=location.thread_ts)

    def post_notice(self, location: ShareLocation, notice: str) -> dict:
        text, blocks = build_notice_message(notice)
        return self._slack.post_message(location.channel, text, blocks=blocks, thread_ts=location.thread_ts)

    def handle_action(self, payload: InteractionPayload) -> None:
        action = payload.action_id

        if action == ACTION_DELETE:
            self._store.delete(payload.value_ref)
            self._update(payload, *build_notice_message(REMOVED_TEXT))
            return

        if action not in (ACTION_SHOW_FULL, ACTION_SHOW_PREVIEW, ACTION_OPEN_MODAL, ACTION_SEND_COPY):
            logger.debug(f"Ignoring unknown action {action!r}")
            return

        entry = self.load_entry(payload.value_ref)
        if entry is None:
            self._update(payload, *build_notice_message(EXPIRED_TEXT))
            return

        if action == ACTION_SHOW_FULL:
            self._update(payload, *build_full_message(payload.value_ref, entry, self._settings.dm_copy_enabled))
        elif action == ACTION_SHOW_PREVIEW:
            self._update(payload, *build_preview_message(payload.value_ref, entry))
        elif action == ACTION_OPEN_MODAL:
            if not payload.trigger_id:
                logger.warning("open_modal action without trigger_id")
                return
            self._slack.open_modal(payload.trigger_id, build_modal_view(entry, self._settings.preview_char_limit))
        elif action == ACTION_SEND_COPY:
            if not self._settings.dm_copy_enabled or not payload.user_id:
                logger.info("DM copy requested but disabled or user unknown")
                return
            dm_channel = self._slack.open_dm(payload.user_id)
            self._slack.post_message(dm_channel, build_copy_text(entry))

    def _update(self, payload: InteractionPayload, text: str, blocks: list[dict[str, Any]]) -> None:
        if not payload.channel or not payload.message_ts:
            logger.warning(f"Cannot update message for {payload.action_id}: missing channel or ts")
            return
        self._slack.update_message(payload.channel, payload.message_ts, text, blocks=blocks)
