"""
Outbound Slack calls.

A thin wrapper over slack_sdk's WebClient for the handful of Web API methods
the bot needs, plus an authenticated streaming download for private file
URLs (httpx). Callers receive plain dicts; SlackApiError propagates.
"""

import logging
from typing import Any, Optional

import httpx
from slack_sdk import WebClient

from emlbot.errors import DownloadError, FileTooLargeError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 30.0


class SlackClient:
    def __init__(
        self,
        token: str,
        web_client: Optional[WebClient] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._token = token
        self._web = web_client or WebClient(token=token)
        self._http = http_client

    # ------------------------------------------------------------------
    # Web API
    # ------------------------------------------------------------------

    def file_info(self, file_id: str) -> dict:
        """Return the files.info ``file`` object."""
        response = self._web.files_info(file=file_id)
        return response.get("file") or {}

    def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[list[dict[str, Any]]] = None,
        thread_ts: Optional[str] = None,
    ) -> dict:
        response = self._web.chat_postMessage(
            channel=channel,
            text=text,
            blocks=blocks,
            thread_ts=thread_ts,
        )
        return response.data

    def update_message(
        self,
        channel: str,
        ts: str,
        text: str,
        blocks: Optional[list[dict[str, Any]]] = None,
    ) -> dict:
        response = self._web.chat_update(channel=channel, ts=ts, text=text, blocks=blocks)
        return response.data

    def open_modal(self, trigger_id: str, view: dict[str, Any]) -> dict:
        response = self._web.views_open(trigger_id=trigger_id, view=view)
        return response.data

    def open_dm(self, user_id: str) -> str:
        """Open (or reuse) a DM channel with a user and return its ID."""
        response = self._web.conversations_open(users=user_id)
        return response["channel"]["id"]

    # ------------------------------------------------------------------
    # File download
    # ------------------------------------------------------------------

    def download_file(self, url: str, max_bytes: int) -> bytes:
        """
        Fetch a private file URL with the bot token.

        The size ceiling is enforced from Content-Length when present and
        again while streaming, so an oversized body is never fully read.

        Raises:
            FileTooLargeError: the file exceeds ``max_bytes``.
            DownloadError: any transport or HTTP failure, or an HTML login
                page in place of the file (missing files:read scope).
        """
        headers = {"Authorization": f"Bearer {self._token}"}
        client = self._http or httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True)
        try:
            with client.stream("GET", url, headers=headers) as response:
                if response.status_code != 200:
                    raise DownloadError(f"Download failed: HTTP {response.status_code}")

                if response.headers.get("content-type", "").startswith("text/html"):
                    raise DownloadError("Slack returned HTML instead of file data (missing files:read scope?)")

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    raise FileTooLargeError(int(declared), max_bytes)

                chunks: list[bytes] = []
                received = 0
                for chunk in response.iter_bytes():
                    received += len(chunk)
                    if received > max_bytes:
                        raise FileTooLargeError(received, max_bytes)
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise DownloadError(f"Download failed: {e}") from e
        finally:
            if self._http is None:
                client.close()

        logger.debug(f"Downloaded {received} bytes from Slack")
        return b"".join(chunks)
