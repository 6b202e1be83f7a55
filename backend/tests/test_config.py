"""
Configuration and context wiring tests.
"""

import pytest
from unittest.mock import MagicMock, patch

from emlbot.config import Settings, load_settings
from emlbot.context import build_context
from emlbot.db import create_supabase_admin
from emlbot.services.kv_store import InMemoryStore, SupabaseKVStore


class TestLoadSettings:
    """Test environment parsing."""

    def test_defaults(self, monkeypatch):
        for name in ("PREVIEW_CHAR_LIMIT", "ALLOWED_CHANNELS", "DM_COPY_ENABLED", "STORE_BACKEND", "RESOLVER_ATTEMPTS", "RESOLVER_BACKOFF_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.preview_char_limit == 3400
        assert settings.allowed_channels == []
        assert settings.dm_copy_enabled is False
        assert settings.store_backend == "memory"
        assert settings.resolver_attempts == 6
        assert settings.resolver_backoff_seconds == 0.8

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("PREVIEW_CHAR_LIMIT", "3000")
        monkeypatch.setenv("ALLOWED_CHANNELS", " C1, C2 ,,")
        monkeypatch.setenv("DM_COPY_ENABLED", "true")
        monkeypatch.setenv("VERBOSE_LOGGING", "1")
        monkeypatch.setenv("STORE_BACKEND", "Supabase")
        monkeypatch.setenv("RESOLVER_BACKOFF_SECONDS", "0.25")

        settings = load_settings()

        assert settings.preview_char_limit == 3000
        assert settings.allowed_channels == ["C1", "C2"]
        assert settings.dm_copy_enabled is True
        assert settings.verbose_logging is True
        assert settings.store_backend == "supabase"
        assert settings.resolver_backoff_seconds == 0.25

    @pytest.mark.parametrize("value", ["", "0", "false", "no", "off"])
    def test_falsy_flags(self, monkeypatch, value):
        monkeypatch.setenv("ASYNC_PROCESSING", value)
        assert load_settings().async_processing is False


class TestChannelAllowed:
    def test_empty_list_allows_all(self):
        assert Settings().channel_allowed("C-any") is True

    def test_list_restricts(self):
        settings = Settings(allowed_channels=["C1"])

        assert settings.channel_allowed("C1") is True
        assert settings.channel_allowed("C2") is False


class TestBuildContext:
    """Test store backend wiring."""

    def test_memory_backend(self):
        ctx = build_context(Settings(store_backend="memory"))

        assert isinstance(ctx.content_store, InMemoryStore)
        assert ctx.content_store is not ctx.coordination_store

    def test_supabase_backend(self):
        settings = Settings(store_backend="supabase", supabase_url="https://x.supabase.co", supabase_service_key="k")

        with patch("emlbot.context.create_supabase_admin", return_value=MagicMock()) as mock_create:
            ctx = build_context(settings)

        mock_create.assert_called_once_with(settings)
        assert isinstance(ctx.content_store, SupabaseKVStore)
        assert isinstance(ctx.diagnostics_store, SupabaseKVStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_context(Settings(store_backend="redis"))

    def test_supabase_requires_credentials(self):
        with pytest.raises(ValueError) as exc_info:
            create_supabase_admin(Settings(store_backend="supabase"))

        assert "SUPABASE_URL" in str(exc_info.value)
