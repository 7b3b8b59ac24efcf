from typing import Optional

from supabase import Client, create_client

from itinerary_engine.core.config import settings
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

supabase: Optional[Client] = None


def init_supabase() -> Optional[Client]:
    """Create the shared client, or None when credentials are missing or invalid."""
    global supabase
    if not (settings.SUPABASE_URL and settings.SUPABASE_KEY):
        logger.warning("SUPABASE_URL or SUPABASE_KEY not set")
        return None

    try:
        supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
        logger.info("Supabase client initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize Supabase: {e}")
        supabase = None
    return supabase


def get_supabase() -> Client:
    client = supabase or init_supabase()
    if client is None:
        raise RuntimeError("Supabase not connected")
    return client
