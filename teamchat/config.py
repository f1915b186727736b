from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./teamchat.db"

    # Session cookie set by the external auth layer
    SESSION_COOKIE_NAME: str = "teamchat_session"

    # HTTP
    API_PREFIX: str = "/api/chat"
    ALLOWED_ORIGINS: list = ["http://localhost:5173", "http://localhost:8080"]

    # Typing presence
    TYPING_TTL_SECONDS: float = 6.0  # server-side expiry for stale typing entries
    TYPING_POLL_INTERVAL: float = 2.0
    TYPING_DEBOUNCE_SECONDS: float = 2.0
    TYPING_IDLE_TIMEOUT: float = 3.0

    # Client
    CLIENT_BASE_URL: str = "http://localhost:8000/api/chat"
    CLIENT_READ_TIMEOUT: float = 10.0
    CLIENT_CONNECT_TIMEOUT: float = 5.0

    # Messages
    MAX_MESSAGE_LENGTH: int = 10000
    MESSAGE_PREVIEW_LENGTH: int = 50

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"

settings = Settings()
