"""
Mail file → plain text extraction.

Supported inputs:
  .eml  (message/rfc822)           parsed with the stdlib email package
  .msg  (Outlook / OLE compound)   parsed with extract-msg, with a byte-scan
                                   fallback when the container is damaged

Output is a header block followed by the body:

    From: ...
    To: ...
    Cc: ...
    Date: ...
    Subject: ...

    <body>

Plain-text bodies are preferred; HTML is converted with BeautifulSoup when the
plain part is missing or nearly empty. Outlook calendar items are not mail and
come back as a skipped document.
"""

import logging
import re
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from pathlib import PurePath
from typing import Optional

import extract_msg
from bs4 import BeautifulSoup

from emlbot.errors import UnsupportedDocumentError
from emlbot.models.document import ExtractedDocument, MailKind

logger = logging.getLogger(__name__)

# A plain-text part shorter than this is treated as missing when HTML exists.
MIN_PLAIN_TEXT_LENGTH = 10

DEGRADED_BANNER = "[!] This message could not be parsed normally; showing recovered text."

_EXTENSION_KINDS = {
    ".eml": MailKind.STRUCTURED_MAIL,
    ".msg": MailKind.PROPRIETARY_BINARY_MAIL,
}

_MIMETYPE_KINDS = {
    "message/rfc822": MailKind.STRUCTURED_MAIL,
    "application/vnd.ms-outlook": MailKind.PROPRIETARY_BINARY_MAIL,
    "application/x-ole-storage": MailKind.PROPRIETARY_BINARY_MAIL,
}

# Outlook message classes that carry calendar data rather than a mail body.
_CALENDAR_CLASS_PREFIXES = ("ipm.schedule.meeting", "ipm.appointment")
_CALENDAR_MARKERS = [
    prefix.encode(encoding)
    for prefix in ("IPM.Schedule.Meeting", "IPM.Appointment")
    for encoding in ("utf-16-le", "ascii")
]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\ufffd]")
_LATIN_CHARS = re.compile(r"[A-Za-z0-9]")
_CJK_CHARS = re.compile(
    r"["
    r"\u3040-\u309f"  # hiragana
    r"\u30a0-\u30ff"  # katakana
    r"\u4e00-\u9fff"  # CJK unified ideographs
    r"]"
)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_mail(filename: Optional[str], mimetype: Optional[str] = None) -> MailKind:
    """Resolve the document kind from the file extension, then the mimetype."""
    if filename:
        kind = _EXTENSION_KINDS.get(PurePath(filename).suffix.lower())
        if kind:
            return kind
    if mimetype:
        kind = _MIMETYPE_KINDS.get(mimetype.split(";")[0].strip().lower())
        if kind:
            return kind
    return MailKind.UNSUPPORTED


# ---------------------------------------------------------------------------
# Shared text helpers
# ---------------------------------------------------------------------------

def html_to_text(html: str) -> str:
    """Convert an HTML body to readable plain text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")

    text = soup.get_text("\n")
    lines = [line.strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def normalize_body(text: str) -> str:
    return (text or "").replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "").strip()


def _choose_body(plain: Optional[str], html: Optional[str]) -> str:
    body = normalize_body(plain or "")
    if len(body) < MIN_PLAIN_TEXT_LENGTH and html:
        body = normalize_body(html_to_text(html))
    return body


def _format_date(value) -> str:
    if not value:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    try:
        return parsedate_to_datetime(str(value)).isoformat()
    except (TypeError, ValueError):
        return str(value)


def format_document(
    sender: Optional[str],
    to: Optional[str],
    cc: Optional[str],
    date,
    subject: Optional[str],
    body: str,
) -> str:
    head = "\n".join([
        f"From: {sender or ''}",
        f"To: {to or ''}",
        f"Cc: {cc or ''}",
        f"Date: {_format_date(date)}",
        f"Subject: {subject or ''}",
    ])
    return f"{head}\n\n{body}".rstrip()


# ---------------------------------------------------------------------------
# .eml
# ---------------------------------------------------------------------------

def _part_content(message: EmailMessage, subtype: str) -> Optional[str]:
    part = message.get_body(preferencelist=(subtype,))
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        # Unknown or lying charset declaration
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def extract_text_from_eml(content: bytes) -> ExtractedDocument:
    """Parse an RFC 822 message. Falls back to a raw decode if parsing fails."""
    try:
        message = BytesParser(policy=policy.default).parsebytes(content)
        body = _choose_body(_part_content(message, "plain"), _part_content(message, "html"))
        text = format_document(
            message.get("From"),
            message.get("To"),
            message.get("Cc"),
            message.get("Date"),
            message.get("Subject"),
            body,
        )
        return ExtractedDocument(kind=MailKind.STRUCTURED_MAIL, text=text)
    except Exception as e:
        logger.warning(f"Failed to parse .eml normally, using raw decode: {e}")
        raw = normalize_body(_CONTROL_CHARS.sub(" ", content.decode("utf-8", errors="replace")))
        return ExtractedDocument(
            kind=MailKind.STRUCTURED_MAIL,
            text=f"{DEGRADED_BANNER}\n\n{raw}",
            degraded=True,
        )


# ---------------------------------------------------------------------------
# .msg
# ---------------------------------------------------------------------------

def _is_calendar_class(message_class: Optional[str]) -> bool:
    return bool(message_class) and message_class.lower().startswith(_CALENDAR_CLASS_PREFIXES)


def _looks_like_calendar_bytes(content: bytes) -> bool:
    return any(marker in content for marker in _CALENDAR_MARKERS)


def script_score(text: str) -> int:
    """
    Count characters that belong to a recognizable script.

    Kana and CJK count double: a wrong decoding of UTF-16 text tends to
    produce about two ASCII characters per real character.
    """
    return len(_LATIN_CHARS.findall(text)) + 2 * len(_CJK_CHARS.findall(text))


def recover_text_from_bytes(content: bytes) -> str:
    """
    Best-effort text recovery from a damaged .msg container.

    Decodes the raw bytes as UTF-16LE (Outlook's native string storage) and
    as CP932 (common for Japanese mail stored in 8-bit properties), keeps the
    candidate with the most recognizable script characters, then strips
    control bytes and collapses whitespace.
    """
    candidates = []
    for encoding in ("utf-16-le", "cp932"):
        decoded = content.decode(encoding, errors="ignore")
        cleaned = _CONTROL_CHARS.sub(" ", decoded)
        cleaned = "".join(ch if ch.isprintable() or ch == "\n" else " " for ch in cleaned)
        candidates.append((script_score(cleaned), cleaned))

    _, best = max(candidates, key=lambda c: c[0])
    best = re.sub(r"[ \t\u3000]+", " ", best)
    best = re.sub(r" ?\n ?", "\n", best)
    return re.sub(r"\n{3,}", "\n\n", best).strip()


def _html_body_of(msg) -> Optional[str]:
    html = getattr(msg, "htmlBody", None)
    if isinstance(html, bytes):
        return html.decode("utf-8", errors="replace")
    return html


def extract_text_from_msg(content: bytes) -> ExtractedDocument:
    """
    Parse an Outlook .msg file.

    Never raises: a container extract-msg cannot open is handed to
    recover_text_from_bytes and returned with a degraded banner.
    """
    kind = MailKind.PROPRIETARY_BINARY_MAIL
    try:
        msg = extract_msg.openMsg(content)
    except Exception as e:
        logger.warning(f"extract-msg could not open file, using byte-scan fallback: {e}")
        if _looks_like_calendar_bytes(content):
            return ExtractedDocument(kind=kind, skipped=True)
        recovered = recover_text_from_bytes(content)
        return ExtractedDocument(kind=kind, text=f"{DEGRADED_BANNER}\n\n{recovered}", degraded=True)

    try:
        if _is_calendar_class(getattr(msg, "classType", None)):
            return ExtractedDocument(kind=kind, skipped=True)

        body = _choose_body(msg.body, _html_body_of(msg))
        text = format_document(msg.sender, msg.to, msg.cc, msg.date, msg.subject, body)
        return ExtractedDocument(kind=kind, text=text)
    except Exception as e:
        logger.warning(f"Failed to read .msg properties, using byte-scan fallback: {e}")
        recovered = recover_text_from_bytes(content)
        return ExtractedDocument(kind=kind, text=f"{DEGRADED_BANNER}\n\n{recovered}", degraded=True)
    finally:
        msg.close()


# ---------------------------------------------------------------------------
# Pipeline entry point
# ---------------------------------------------------------------------------

def extract_document(
    content: bytes,
    filename: Optional[str],
    mimetype: Optional[str] = None,
) -> ExtractedDocument:
    """
    Classify and extract a downloaded file.

    Raises:
        UnsupportedDocumentError: for anything that is not .eml or .msg.
    """
    kind = classify_mail(filename, mimetype)
    if kind is MailKind.STRUCTURED_MAIL:
        return extract_text_from_eml(content)
    if kind is MailKind.PROPRIETARY_BINARY_MAIL:
        return extract_text_from_msg(content)
    raise UnsupportedDocumentError(f"Unsupported document: {filename!r} ({mimetype})")
