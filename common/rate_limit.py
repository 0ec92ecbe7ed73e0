"""
Shared slowapi limiter for the application and the LLM-backed routers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from config.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    headers_enabled=True,
    default_limits=["200/minute"],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)
