import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "3000"))

    # Database settings
    # No default on purpose: the service refuses to start without it.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    database_pool_size: int = int(os.getenv("DATABASE_POOL_SIZE", "10"))
    database_acquire_timeout: float = float(os.getenv("DATABASE_ACQUIRE_TIMEOUT", "30"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Book Shelf API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
