from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Trip defaults
    DEFAULT_TRIP_DAYS: int = 3
    DEFAULT_REGION: str = "India"

    # Place knowledge cache
    PLACE_CACHE_BACKEND: str = "memory"  # memory | file | supabase
    PLACE_CACHE_PATH: str = "storage/place_knowledge_cache.json"
    PLACE_CACHE_TABLE: str = "place_knowledge_cache"
    PLACE_CACHE_TTL_DAYS: int = 7
    PLACE_CACHE_VERSION: int = 1

    # Research lookups
    RESEARCH_DELAY_SEC: float = 0.5
    RESEARCH_TIMEOUT: int = 8
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org"
    SERPER_URL: str = "https://google.serper.dev/search"
    SERPER_API_KEY: str = ""
    HTTP_USER_AGENT: str = "itinerary-engine/0.1 (trip planner)"

    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""


settings = Settings()
