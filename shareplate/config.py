import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "shareplate"
    app_env: str = "dev"
    base_url: str = "http://localhost:5000"
    admin_password: str = "change-me-in-production"
    telegram_bot_token: str = ""
    telegram_channel_id: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    relay_timeout_seconds: float = 60.0
    # sendDocument on the public Bot API caps documents at 50 MB
    max_upload_size_bytes: int = 50 * 1024 * 1024
    share_generation_attempts: int = 5
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="SHAREPLATE_")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
