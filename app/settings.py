from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = [PROJECT_ROOT / ".env", ".env"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILES, extra="ignore")

    # DB
    DATABASE_URL: str = "sqlite:///./data/medcalls.db"

    # App
    TZ: str = "Asia/Karachi"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # API
    API_KEY: str | None = None

    # Scheduler
    SWEEP_WINDOW_MIN: int = 30
    SNOOZE_COOLDOWN_MIN: int = 15
    MAX_RETRY_COUNT: int = 2
    SCHEDULER_POLL_INTERVAL_SEC: int = 60

    # Phone normalization
    PHONE_COUNTRY_CODE: str = "92"

    # Calls
    CALL_PROVIDER: str = "twilio"
    CALL_PROVIDER_URL: str | None = None
    CALL_PROVIDER_KEY: str | None = None
    CALL_TIMEOUT_SEC: float = 15.0
    CALL_TIME_LIMIT_SEC: int = 45

    # Twilio
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None
    TWILIO_VOICE: str = "alice"


settings = Settings()
