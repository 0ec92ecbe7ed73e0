from supabase import Client, create_client

from config.config import settings
from common.exceptions import ExternalServiceException
from common.logging import get_logger

logger = get_logger("supabase_client")


def create_supabase_client() -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise ExternalServiceException(
            detail="Supabase is not configured (SUPABASE_URL / SUPABASE_KEY)",
            service_name="supabase",
            error_code="SUPABASE_NOT_CONFIGURED",
        )
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("Supabase client created")
    return client
