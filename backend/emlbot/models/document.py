"""
Pydantic models for extracted documents and stored content.
"""

from enum import Enum

from pydantic import BaseModel


class MailKind(str, Enum):
    STRUCTURED_MAIL = "structured_mail"                  # .eml / message/rfc822
    PROPRIETARY_BINARY_MAIL = "proprietary_binary_mail"  # Outlook .msg
    UNSUPPORTED = "unsupported"


class ExtractedDocument(BaseModel):
    """
    Extractor output.

    skipped   — the file is a supported container but holds non-mail content
                (calendar/meeting items); the caller renders a fixed notice.
    degraded  — text came from the byte-scan fallback and carries a banner.
    """
    kind: MailKind
    text: str = ""
    degraded: bool = False
    skipped: bool = False


class ContentEntry(BaseModel):
    """Value stored under ``{timestamp_ms}:{file_id}`` in the content namespace."""
    text: str
    filename: str
