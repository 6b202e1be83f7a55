"""
Runtime configuration.

All settings come from environment variables (optionally loaded from a .env
file via python-dotenv) and are collected once into a Settings model that is
passed explicitly to the components that need it.

Environment variables
---------------------
SLACK_BOT_TOKEN           Bot credential used for Web API calls and file downloads.
SLACK_SIGNING_SECRET      Shared secret for request signature verification.
PREVIEW_CHAR_LIMIT        Character budget for the modal view (default: 3400).
MAX_STORED_CHARS          Character cap applied to stored bodies (default: 200000).
MAX_DOWNLOAD_BYTES        Reject attachments larger than this (default: 20 MiB).
ALLOWED_CHANNELS          Comma-separated channel IDs; empty means every channel.
DM_COPY_ENABLED           Show the "send copy" button in the full view.
VERBOSE_LOGGING           Log at DEBUG instead of INFO.
ASYNC_PROCESSING          Process files after the HTTP response is sent.
DEBUG_PREVIEW_ENABLED     Expose POST /slack/preview.
DEBUG_ECHO_ENABLED        Expose /echo, which reflects the request back.
STORE_BACKEND             "memory" (default) or "supabase".
SUPABASE_URL              Supabase project URL (supabase backend only).
SUPABASE_SERVICE_KEY      Supabase service key (supabase backend only).
KV_TABLE                  Supabase table holding key/value rows (default: kv_entries).
RESOLVER_ATTEMPTS         files.info polls before giving up (default: 6).
RESOLVER_BACKOFF_SECONDS  Fixed delay between polls (default: 0.8).
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


class Settings(BaseModel):
    slack_bot_token: str = ""
    slack_signing_secret: str = ""

    preview_char_limit: int = 3400
    max_stored_chars: int = 200_000
    max_download_bytes: int = 20 * 1024 * 1024
    allowed_channels: list[str] = []

    dm_copy_enabled: bool = False
    verbose_logging: bool = False
    async_processing: bool = False
    debug_preview_enabled: bool = False
    debug_echo_enabled: bool = False

    store_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    kv_table: str = "kv_entries"

    resolver_attempts: int = 6
    resolver_backoff_seconds: float = 0.8

    def channel_allowed(self, channel: str) -> bool:
        """An empty allow-list admits every channel."""
        return not self.allowed_channels or channel in self.allowed_channels


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    channels_env = os.getenv("ALLOWED_CHANNELS", "").strip()
    allowed = [c.strip() for c in channels_env.split(",") if c.strip()] if channels_env else []

    return Settings(
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN", ""),
        slack_signing_secret=os.getenv("SLACK_SIGNING_SECRET", ""),
        preview_char_limit=_env_int("PREVIEW_CHAR_LIMIT", 3400),
        max_stored_chars=_env_int("MAX_STORED_CHARS", 200_000),
        max_download_bytes=_env_int("MAX_DOWNLOAD_BYTES", 20 * 1024 * 1024),
        allowed_channels=allowed,
        dm_copy_enabled=_env_flag("DM_COPY_ENABLED"),
        verbose_logging=_env_flag("VERBOSE_LOGGING"),
        async_processing=_env_flag("ASYNC_PROCESSING"),
        debug_preview_enabled=_env_flag("DEBUG_PREVIEW_ENABLED"),
        debug_echo_enabled=_env_flag("DEBUG_ECHO_ENABLED"),
        store_backend=os.getenv("STORE_BACKEND", "memory").strip().lower() or "memory",
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY") or None,
        kv_table=os.getenv("KV_TABLE", "kv_entries"),
        resolver_attempts=_env_int("RESOLVER_ATTEMPTS", 6),
        resolver_backoff_seconds=_env_float("RESOLVER_BACKOFF_SECONDS", 0.8),
    )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
