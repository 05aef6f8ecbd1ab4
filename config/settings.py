"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings.
    
    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """
    
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )
    
    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    
    # ===================
    # IMPORT
    # ===================
    import_batch_size: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Rows processed concurrently per import batch"
    )
    import_batch_delay_ms: int = Field(
        default=300,
        ge=0,
        le=60000,
        description="Pause between import batches to bound write pressure"
    )
    import_max_rows: int = Field(
        default=20000,
        ge=1,
        description="Maximum rows accepted in a single import"
    )
    
    # ===================
    # PRICE SCAN
    # ===================
    scan_batch_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Products per price-scan batch"
    )
    scan_delay_between_batches_ms: int = Field(
        default=5000,
        ge=0,
        le=300000,
        description="Pause between price-scan batches"
    )
    scan_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Page fetch attempts per request"
    )
    scan_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=120000,
        description="Per-request timeout for scrapers"
    )
    scan_confidence_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Confidence above which a listing counts as a reliable match"
    )
    scan_min_match_confidence: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Listings below this confidence are discarded"
    )
    scraper_default_rate_limit_ms: int = Field(
        default=1000,
        ge=0,
        le=60000,
        description="Minimum delay between requests when a source has none configured"
    )
    scraper_max_listings: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum listings extracted per search page"
    )
    
    # ===================
    # PRICE ANALYSIS
    # ===================
    margin_opportunity_threshold_pct: float = Field(
        default=30.0,
        ge=0,
        le=1000,
        description="Margin (%) over wholesale that flags a pricing opportunity"
    )
    
    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed by the CORS middleware"
    )
    
    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.
    
    Returns:
        Settings: Application settings
        
    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
