from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./jevehome.db"

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    # Logging level for the root logger (DEBUG, INFO, WARNING, ...)
    log_level: str = "INFO"

    # Gemini: API key (Google AI Studio) or Vertex AI project; Vertex wins when both are set
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-2.5-flash-lite"  # used when agent config has no "model" row

    # Assistant chat
    chat_timeout_seconds: float = 120.0  # hard ceiling for one streamed exchange
    chat_message_max_chars: int = 4000
    chat_title_max_chars: int = 60
    chat_conversation_list_limit: int = 50

    # Redis (optional cache for conversation turns; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # After a failed Redis connect, skip the cache for this long before trying again
    redis_retry_seconds: int = 30

    # Chat cache TTL in seconds (1 day)
    chat_cache_ttl_seconds: int = 86400

    # Photos: folder with gallery images (empty = backend/uploads/photos)
    photo_upload_dir: str = ""

    # Signed photo URL expiry (minutes)
    photo_url_expire_minutes: int = 60

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
