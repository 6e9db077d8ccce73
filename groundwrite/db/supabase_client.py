"""Supabase client for the paper, chunk and project stores."""

from functools import lru_cache

from supabase import Client, create_client

from groundwrite.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Cached service-role Supabase client.

    Raises:
        RuntimeError: If the client cannot be created
    """
    settings = get_settings()
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
