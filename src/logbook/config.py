from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./logbook.db"
    sync_url: str = ""
    sync_user: str = ""
    sync_password: str = ""
    sync_auth: bool = True
    request_timeout: float = 30.0  # seconds, per HTTP call
    sync_hour: int = 3
    airports_chunk_size: int = 1500
    settings_dir: Path = Path.home() / ".logbook"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
