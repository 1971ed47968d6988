from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_CREDENTIALS_DIR = Path.home() / ".gdrive-mcp-server"


class Settings(BaseSettings):
    credentials: Path = DEFAULT_CREDENTIALS_DIR / ".gdrive-server-credentials.json"
    oauth_keys_path: Path | None = None
    host: str = "127.0.0.1"
    port: int = 9000
    log_level: str = "INFO"

    model_config = {"env_prefix": "MCP_GDRIVE_", "env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
