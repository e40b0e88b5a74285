"""
Application configuration.
Values come from environment variables with a .env file fallback so local
development works without exporting anything.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str

    # Vapi outbound API (call fetch / metadata patch-back)
    VAPI_BASE_URL: str = "https://api.vapi.ai"
    VAPI_PRIVATE_KEY: str = ""
    VAPI_TIMEOUT_SECONDS: float = 15.0

    # Inbound auth: x-api-key on tool endpoints, x-vapi-secret on webhooks.
    # Empty values disable the corresponding check.
    VAPI_API_KEY: str = ""
    VAPI_WEBHOOK_SECRET: str = ""

    # Call-completion reconciliation tuning (milliseconds)
    COMPLETION_POLL_INITIAL_DELAY_MS: int = 60_000
    COMPLETION_POLL_MAX_DELAY_MS: int = 180_000
    COMPLETION_POLL_ERROR_MAX_DELAY_MS: int = 300_000
    ANALYSIS_RETRY_INITIAL_DELAY_MS: int = 30_000
    ANALYSIS_RETRY_MAX_DELAY_MS: int = 300_000
    MAX_CALL_RETRIES: int = 3

    class Config:
        env_file = ".env"


settings = Settings()
