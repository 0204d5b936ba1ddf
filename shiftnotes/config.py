import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "ShiftNotes"

    data_path: Path = Path("shiftnotes-data.json")
    sort_preferences_path: Path = Path("shiftnotes-sort-preferences.json")

    # upper bound of the remote table's batch write
    cascade_batch_size: int = Field(25, ge=1, le=25)

    log_level: str = "INFO"

    # bearer token -> owner id, e.g. SHIFTNOTES_API_TOKENS='{"dev-token": "user-1"}'
    api_tokens: dict[str, str] = {}

    model_config = SettingsConfigDict(
        env_prefix="SHIFTNOTES_", env_file=".env", extra="ignore"
    )


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
