from functools import lru_cache

from supabase import Client, create_client

from syncbridge.config import settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Service-role client shared by the whole process."""
    return create_client(settings.supabase_url, settings.supabase_service_role_key)
