from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "storefront-client"

    API_URL: str = "http://localhost:5000/api"
    PAYMENT_PUBLISHABLE_KEY: Optional[str] = None

    REQUEST_TIMEOUT: float = 10.0
    KEEP_UNUSED_DATA_FOR: float = 60.0   # seconds an unsubscribed query stays cached
    READ_RETRY_ATTEMPTS: int = 3
    READ_RETRY_BASE_DELAY: float = 0.1

    class Config:
        env_file = ".env"
        env_prefix = "STOREFRONT_"
        extra = "ignore"

client_settings = Settings()
