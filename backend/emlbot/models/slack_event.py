"""
Pydantic models for inbound Slack deliveries.

Models:
  FileReference       — the shared document, partially filled by the event
  ShareLocation       — the resolved reply destination (channel + thread)
  EventKind           — closed classification of an event envelope
  ClassifiedEvent     — router output: kind + file refs + destination hints
  InteractionPayload  — a button click, reduced to what the composer needs
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FileReference(BaseModel):
    """
    Identifies a shared document.

    Only ``id`` is guaranteed. ``file_shared`` notifications carry nothing
    else, so the remaining fields are completed from files.info.
    """
    id: str
    name: Optional[str] = None
    mimetype: Optional[str] = None
    download_url: Optional[str] = None
    size: Optional[int] = None

    def merged_with(self, file_info: dict) -> "FileReference":
        """Fill missing fields from a files.info ``file`` object."""
        return FileReference(
            id=self.id,
            name=self.name or file_info.get("name"),
            mimetype=self.mimetype or file_info.get("mimetype"),
            download_url=(
                self.download_url
                or file_info.get("url_private_download")
                or file_info.get("url_private")
            ),
            size=self.size if self.size is not None else file_info.get("size"),
        )

    @classmethod
    def from_slack_file(cls, file_obj: dict) -> "FileReference":
        return cls(
            id=file_obj["id"],
            name=file_obj.get("name"),
            mimetype=file_obj.get("mimetype"),
            download_url=file_obj.get("url_private_download") or file_obj.get("url_private"),
            size=file_obj.get("size"),
        )


class ShareLocation(BaseModel):
    channel: str
    thread_ts: str


class EventKind(str, Enum):
    DIAGNOSTIC_MENTION = "diagnostic_mention"
    FILE_SHARE_MESSAGE = "file_share_message"
    FILE_SHARED = "file_shared"
    IGNORED = "ignored"


class ClassifiedEvent(BaseModel):
    """
    Result of classifying an ``event_callback`` envelope.

    Both file-bearing kinds describe the same underlying fact ("this file was
    posted here"); they differ only in how much of the FileReference and
    destination they carry.
    """
    kind: EventKind
    files: list[FileReference] = []
    channel_hint: Optional[str] = None
    thread_hint: Optional[str] = None
    user: Optional[str] = None
    event_id: Optional[str] = None


class InteractionPayload(BaseModel):
    """
    A single block action.

    ``value_ref`` is the key of a ContentEntry in the content store. The
    payload never carries the text itself; the composer always re-reads it.
    """
    action_id: str
    value_ref: str
    channel: Optional[str] = None
    message_ts: Optional[str] = None
    user_id: Optional[str] = None
    trigger_id: Optional[str] = None
