"""
Database client configuration.
Uses Supabase (PostgREST) as the backing key-value store when
STORE_BACKEND=supabase.
"""

from supabase import Client, create_client

from emlbot.config import Settings


def create_supabase_admin(settings: Settings) -> Client:
    """
    Build a service-level Supabase client (bypasses RLS).

    Raises:
        ValueError: if SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured.
    """
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set when STORE_BACKEND=supabase"
        )
    return create_client(settings.supabase_url, settings.supabase_service_key)
