"""Supabase client for the filing store."""

from functools import lru_cache

from supabase import Client, create_client

from app.core.config import get_settings
from app.core.exceptions import StoreConnectionError


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get the shared Supabase client (cached singleton).

    The client holds no per-user state; every query carries the acting
    user's id as an explicit filter.

    Raises:
        StoreConnectionError: If the client cannot be initialised
    """
    settings = get_settings()
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise StoreConnectionError(f"Failed to initialize Supabase client: {e}") from e
