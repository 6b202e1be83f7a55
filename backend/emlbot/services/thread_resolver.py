"""
Reply-destination resolution.

A ``message``/``file_share`` event carries the channel and message ts, so the
reply thread is known immediately. A standalone ``file_shared`` event carries
at most a channel ID, and the share record that names the message ts may not
be attached to the file yet when the event arrives. In that case files.info
is polled a bounded number of times until ``shares`` shows up.

files.info ``shares`` layout:
    {
      "public":  {"C123": [{"ts": "1700000000.000100", "thread_ts": ...}, ...]},
      "private": {"G456": [...]}
    }
"""

import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel
from slack_sdk.errors import SlackApiError

from emlbot.models.slack_event import ShareLocation

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 6
DEFAULT_BACKOFF_SECONDS = 0.8


class Resolution(BaseModel):
    location: ShareLocation
    # Latest files.info ``file`` object, when one was fetched.
    file_info: Optional[dict] = None


def extract_share_location(
    file_info: dict,
    preferred_channel: Optional[str] = None,
) -> Optional[ShareLocation]:
    """
    Pick a reply destination out of a files.info ``file`` object.

    Takes the first (channel, anchor) pair encountered while walking
    ``shares`` in visibility-scope order. When ``preferred_channel`` appears
    among the shares its first record wins instead. The anchor is the share's
    ``thread_ts`` when the file was posted inside a thread, otherwise its own
    ``ts``.
    """
    shares = file_info.get("shares") or {}
    first: Optional[ShareLocation] = None

    for scope in shares.values():
        if not isinstance(scope, dict):
            continue
        for channel_id, records in scope.items():
            for record in records or []:
                anchor = record.get("thread_ts") or record.get("ts")
                if not anchor:
                    continue
                location = ShareLocation(channel=channel_id, thread_ts=anchor)
                if preferred_channel is None or channel_id == preferred_channel:
                    return location
                if first is None:
                    first = location

    return first


class ThreadResolver:
    """
    Resolve (channel, thread_ts) for a file, polling files.info when needed.

    ``fetch_file_info`` takes a file ID and returns the files.info ``file``
    object. ``sleep`` is injectable so tests do not wait on the wall clock.
    """

    def __init__(
        self,
        fetch_file_info: Callable[[str], dict],
        attempts: int = DEFAULT_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetch_file_info = fetch_file_info
        self._attempts = max(1, attempts)
        self._backoff = backoff_seconds
        self._sleep = sleep

    def resolve(
        self,
        file_id: str,
        channel_hint: Optional[str] = None,
        thread_hint: Optional[str] = None,
        initial_info: Optional[dict] = None,
    ) -> Optional[Resolution]:
        """
        ``initial_info`` is a files.info result the caller already holds; it
        stands in for the first poll.

        Returns:
            A Resolution, or None when no destination appeared within the
            retry budget. Never raises for API or transport errors; they count
            as "metadata not there yet".
        """
        if channel_hint and thread_hint:
            return Resolution(location=ShareLocation(channel=channel_hint, thread_ts=thread_hint))

        file_info: Optional[dict] = None
        for attempt in range(1, self._attempts + 1):
            if attempt == 1 and initial_info:
                file_info = initial_info
            else:
                try:
                    file_info = self._fetch_file_info(file_id)
                except (SlackApiError, OSError) as e:
                    logger.warning(f"files.info failed for {file_id} (attempt {attempt}): {e}")
                    file_info = None

            if file_info:
                location = extract_share_location(file_info, preferred_channel=channel_hint)
                if location:
                    logger.debug(f"Resolved {file_id} to {location.channel}/{location.thread_ts} on attempt {attempt}")
                    return Resolution(location=location, file_info=file_info)

            if attempt < self._attempts:
                logger.debug(f"No share metadata for {file_id} yet (attempt {attempt}); retrying")
                self._sleep(self._backoff)

        logger.info(f"Could not resolve a reply thread for {file_id} after {self._attempts} attempts")
        return None
