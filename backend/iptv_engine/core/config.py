from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "IPTV Sync Engine"
    VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = "sqlite:////db/iptv.db"

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    TIMEZONE: str = "Europe/Paris"

    # Provider HTTP
    HTTP_TIMEOUT: float = 60.0
    PORTAL_PROBE_TIMEOUT: float = 10.0

    # Cache lifetimes (can be overridden by DB config)
    CACHE_EXPIRY_DAYS: int = 30
    VOD_SERIES_CATEGORY_TTL_DAYS: int = 30

    # Playback
    PLAYBACK_MAX_RETRIES: int = 1

    # Content filtering defaults (can be overridden by DB config)
    FILTER_CATEGORIES_LIST: str = ""
    FILTER_CHANNELS_LIST: str = ""
    PAUSE_FILTERING: bool = False
    PAUSE_CACHING: bool = False

    class Config:
        env_file = ".env"

settings = Settings()
