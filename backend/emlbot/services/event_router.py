"""
Classification of inbound Slack deliveries.

Two transports reach POST /slack/events:
  application/json                   — Events API envelopes and the
                                       url_verification handshake
  application/x-www-form-urlencoded  — interactive actions, as payload=<json>

Events API shapes that announce a shared file:
  message / subtype=file_share   channel + ts + full file objects
  file_shared                    file_id + channel_id only
Both describe the same upload and are keyed by file ID downstream.
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qs

from emlbot.models.slack_event import (
    ClassifiedEvent,
    EventKind,
    FileReference,
    InteractionPayload,
)

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def is_form_encoded(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.split(";")[0].strip().lower() == FORM_CONTENT_TYPE


def parse_json_body(body: bytes) -> Optional[dict[str, Any]]:
    """Decode a JSON object body. Returns None when the body is not a JSON object."""
    try:
        value = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return value if isinstance(value, dict) else None


def handshake_challenge(payload: dict[str, Any]) -> Optional[str]:
    """The challenge string of a url_verification payload, else None."""
    if payload.get("type") != "url_verification":
        return None
    challenge = payload.get("challenge")
    return challenge if isinstance(challenge, str) and challenge else None


def parse_interaction_body(body: bytes) -> Optional[dict[str, Any]]:
    """Decode a form-encoded ``payload=<json>`` body. None when malformed."""
    try:
        form = parse_qs(body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        return None

    payload_str = (form.get("payload") or [""])[0]
    if not payload_str:
        return None
    try:
        payload = json.loads(payload_str)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def classify_event(envelope: dict[str, Any]) -> ClassifiedEvent:
    """
    Classify an Events API envelope.

    Only ``event_callback`` envelopes are considered; bot-authored messages
    are ignored so the bot never reacts to its own replies.
    """
    event_id = envelope.get("event_id")
    if envelope.get("type") != "event_callback":
        return ClassifiedEvent(kind=EventKind.IGNORED, event_id=event_id)

    event = envelope.get("event") if isinstance(envelope.get("event"), dict) else {}
    event_type = event.get("type")

    if event_type == "app_mention":
        return ClassifiedEvent(
            kind=EventKind.DIAGNOSTIC_MENTION,
            channel_hint=event.get("channel"),
            thread_hint=event.get("thread_ts") or event.get("ts"),
            user=event.get("user"),
            event_id=event_id,
        )

    if event_type == "message" and event.get("subtype") == "file_share":
        if event.get("bot_id"):
            return ClassifiedEvent(kind=EventKind.IGNORED, event_id=event_id)
        files = [
            FileReference.from_slack_file(f)
            for f in event.get("files") or []
            if isinstance(f, dict) and f.get("id")
        ]
        if not files:
            return ClassifiedEvent(kind=EventKind.IGNORED, event_id=event_id)
        return ClassifiedEvent(
            kind=EventKind.FILE_SHARE_MESSAGE,
            files=files,
            channel_hint=event.get("channel"),
            thread_hint=event.get("thread_ts") or event.get("ts"),
            user=event.get("user"),
            event_id=event_id,
        )

    if event_type == "file_shared":
        file_obj = event.get("file") if isinstance(event.get("file"), dict) else {}
        file_id = event.get("file_id") or file_obj.get("id")
        if not file_id:
            return ClassifiedEvent(kind=EventKind.IGNORED, event_id=event_id)
        return ClassifiedEvent(
            kind=EventKind.FILE_SHARED,
            files=[FileReference(id=file_id)],
            channel_hint=event.get("channel_id"),
            user=event.get("user_id"),
            event_id=event_id,
        )

    logger.debug(f"Ignoring event type {event_type!r}")
    return ClassifiedEvent(kind=EventKind.IGNORED, event_id=event_id)


def interaction_from_payload(payload: dict[str, Any]) -> Optional[InteractionPayload]:
    """
    Reduce a ``block_actions`` payload to an InteractionPayload.

    Returns None for other interaction types or when the first action has no
    value (every toggle button carries its content key as the value).
    """
    if payload.get("type") != "block_actions":
        return None

    actions = payload.get("actions")
    if not isinstance(actions, list) or not actions or not isinstance(actions[0], dict):
        return None
    action = actions[0]

    action_id = str(action.get("action_id") or "")
    value_ref = str(action.get("value") or "")
    if not action_id or not value_ref:
        return None

    user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
    channel = payload.get("channel") if isinstance(payload.get("channel"), dict) else {}
    container = payload.get("container") if isinstance(payload.get("container"), dict) else {}
    message = payload.get("message") if isinstance(payload.get("message"), dict) else {}

    return InteractionPayload(
        action_id=action_id,
        value_ref=value_ref,
        channel=channel.get("id") or container.get("channel_id"),
        message_ts=message.get("ts") or container.get("message_ts"),
        user_id=user.get("id"),
        trigger_id=payload.get("trigger_id"),
    )
