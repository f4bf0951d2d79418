from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_CONFIG_DIR = Path(__file__).parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="QUESTION_DEDUP_")

    database_url: str = "sqlite+aiosqlite:///./question_dedup.db"
    dedup_config_path: Path = _CONFIG_DIR / "dedup.yaml"
    log_json: bool = True
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
