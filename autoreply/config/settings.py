"""
Application settings and configuration.
All secrets are loaded from environment variables.
"""

from typing import Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database - Use DATA_DIR for persistent volumes
    data_dir: str = "."
    database_url_override: Optional[str] = None

    @property
    def database_url(self) -> str:
        """Database URL, defaulting to a SQLite file under DATA_DIR."""
        if self.database_url_override:
            return self.database_url_override
        return f"sqlite+aiosqlite:///{self.data_dir}/autoreply.db"

    # Key-value store backing the work queues, cooldowns and AI cache
    redis_url: str = "redis://localhost:6379/0"

    # Worker configuration
    message_queue: str = "autoreplyx:message_queue"
    poll_timeout: int = 5  # seconds a worker blocks waiting for a message
    worker_count: int = 4
    max_retries: int = 3
    retry_sweep_interval_ms: int = 300000

    # AI configuration (empty key means fallback responses only)
    openai_api_key: Optional[str] = None
    ai_model: str = "gpt-4o-mini"
    ai_max_tokens: int = 200
    ai_cache_ttl_hours: int = 24

    # Outbound channel APIs
    instagram_api_url: str = "https://graph.facebook.com/v18.0"
    kakao_api_url: str = "https://bizmessage.kakao.com/v1/messages"
    naver_api_url: str = "https://gw.talk.naver.com/chatbot/v1/event"
    http_timeout_seconds: float = 10.0

    # Public links appended to rule responses
    public_base_url: str = "https://autoreplyx.com"

    # Application Settings
    debug: bool = False

    # Timezone used for rule active hours (Korea Standard Time)
    timezone: str = "Asia/Seoul"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
