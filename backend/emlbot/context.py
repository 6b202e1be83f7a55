"""
Application context.

Everything with state or credentials (settings, stores, the Slack client) is
built once here and handed to routes through FastAPI's dependency injection,
so tests can swap any of it via ``app.dependency_overrides[get_context]``.
"""

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable

from emlbot.config import Settings, get_settings
from emlbot.db import create_supabase_admin
from emlbot.services.composer import ReplyComposer
from emlbot.services.coordinator import FileLockCoordinator
from emlbot.services.kv_store import (
    CONTENT_NAMESPACE,
    COORDINATION_NAMESPACE,
    DIAGNOSTICS_NAMESPACE,
    InMemoryStore,
    KeyValueStore,
    SupabaseKVStore,
)
from emlbot.services.slack_client import SlackClient
from emlbot.services.thread_resolver import ThreadResolver

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    content_store: KeyValueStore
    coordination_store: KeyValueStore
    diagnostics_store: KeyValueStore
    slack: SlackClient
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = field(default=time.time)

    def coordinator(self) -> FileLockCoordinator:
        return FileLockCoordinator(self.coordination_store, clock=self.clock)

    def resolver(self) -> ThreadResolver:
        return ThreadResolver(
            self.slack.file_info,
            attempts=self.settings.resolver_attempts,
            backoff_seconds=self.settings.resolver_backoff_seconds,
            sleep=self.sleep,
        )

    def composer(self) -> ReplyComposer:
        return ReplyComposer(self.content_store, self.slack, self.settings)


def build_context(settings: Settings) -> AppContext:
    """Wire stores and clients according to STORE_BACKEND."""
    if settings.store_backend == "supabase":
        client = create_supabase_admin(settings)
        content: KeyValueStore = SupabaseKVStore(client, CONTENT_NAMESPACE, settings.kv_table)
        coordination: KeyValueStore = SupabaseKVStore(client, COORDINATION_NAMESPACE, settings.kv_table)
        diagnostics: KeyValueStore = SupabaseKVStore(client, DIAGNOSTICS_NAMESPACE, settings.kv_table)
    elif settings.store_backend == "memory":
        content = InMemoryStore()
        coordination = InMemoryStore()
        diagnostics = InMemoryStore()
    else:
        raise ValueError(f"Unknown STORE_BACKEND {settings.store_backend!r}; expected 'memory' or 'supabase'")

    logger.info(f"Using {settings.store_backend} key-value store")
    return AppContext(
        settings=settings,
        content_store=content,
        coordination_store=coordination,
        diagnostics_store=diagnostics,
        slack=SlackClient(settings.slack_bot_token),
    )


@lru_cache()
def get_context() -> AppContext:
    """FastAPI dependency: the process-wide context."""
    return build_context(get_settings())
