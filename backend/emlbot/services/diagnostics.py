"""
Runtime diagnostics: the /whoami report, the /echo reflection and replies to
@-mentions.

Neither path may affect file processing. A diagnostics store that is down
is logged and otherwise ignored.
"""

import logging
import platform
from datetime import datetime, timezone
from typing import Any

from slack_sdk.errors import SlackApiError

from emlbot.config import Settings
from emlbot.context import AppContext
from emlbot.errors import StoreUnavailableError
from emlbot.models.slack_event import ClassifiedEvent
from emlbot.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SERVICE_MARKER = "whoami@eml-to-text-bot"
ECHO_MARKER = "echo@eml-to-text-bot"
VERSION = "0.1.0"

MENTION_REPLY = (
    "eml-to-text-bot is running (v{version}, store: {backend}). "
    "Share an .eml or .msg file in this channel and I'll reply with its text."
)


def describe_runtime(settings: Settings) -> dict[str, Any]:
    """Credential presence and runtime facts. Never includes secret values."""
    return {
        "hasToken": bool(settings.slack_bot_token),
        "hasSecret": bool(settings.slack_signing_secret),
        "storeBackend": settings.store_backend,
        "python": platform.python_version(),
        "asyncProcessing": settings.async_processing,
        "dmCopyEnabled": settings.dm_copy_enabled,
    }


def record_ping(store: KeyValueStore, now: datetime) -> bool:
    """
    Write ``whoami-<ms>`` to the diagnostics namespace.

    Returns:
        True if the write succeeded, False if the store rejected it.
    """
    key = f"whoami-{int(now.timestamp() * 1000)}"
    try:
        store.set(key, {"ping": now.isoformat()})
    except StoreUnavailableError as e:
        logger.warning(f"Diagnostics ping not recorded: {e}")
        return False
    return True


def build_whoami(ctx: AppContext) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    env = describe_runtime(ctx.settings)
    env["pingRecorded"] = record_ping(ctx.diagnostics_store, now)
    return {
        "marker": SERVICE_MARKER,
        "now": now.isoformat(),
        "path": "/whoami",
        "method": "GET",
        "env": env,
    }


def build_echo(method: str, path: str, headers: dict[str, str], body: bytes) -> dict[str, Any]:
    """Reflect a request back to its sender. Undecodable body bytes are replaced."""
    logger.info(f"Echo hit: {method} {path} ({len(body)} bytes)")
    return {
        "marker": ECHO_MARKER,
        "method": method,
        "path": path,
        "headers": headers,
        "body": body.decode("utf-8", errors="replace"),
    }


def reply_to_mention(ctx: AppContext, event: ClassifiedEvent) -> None:
    """Answer an @-mention in its thread. Slack errors are logged, not raised."""
    if not event.channel_hint:
        return
    text = MENTION_REPLY.format(version=VERSION, backend=ctx.settings.store_backend)
    try:
        ctx.slack.post_message(event.channel_hint, text, thread_ts=event.thread_hint)
    except (SlackApiError, OSError) as e:
        logger.warning(f"Failed to reply to mention in {event.channel_hint}: {e}")
