"""
Database connection management.

Provides Supabase client singleton for database operations.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class SupabaseConnectionError(Exception):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.
    
    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.
    
    Returns:
        Client: Supabase client
        
    Raises:
        SupabaseConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )
        
        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )
        
        # Cheap round trip so a bad key fails here, not mid-import
        client.table("scraping_sources").select("id").limit(1).execute()
        
        logger.info(
            "supabase_connected",
            status="success"
        )
        
        return client
        
    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise SupabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


def check_connection() -> dict:
    """
    Check database connection health.
    
    Returns:
        dict: Connection status with catalog and source counts
    """
    try:
        client = get_supabase_client()
        
        products = client.table("normalized_products").select("id", count="exact").execute()
        sources = client.table("scraping_sources").select("id", count="exact").execute()
        
        return {
            "status": "healthy",
            "products_count": products.count,
            "sources_count": sources.count
        }
        
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
