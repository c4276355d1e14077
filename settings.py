"""Runtime configuration, read from OZI_* environment variables or a .env file."""

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Region downloader
    TILE_URL_TEMPLATE: str = Field(
        default="https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png",
        description="Tile URL; {s} is replaced by one of TILE_SUBDOMAINS",
    )
    TILE_SUBDOMAINS: List[str] = Field(default_factory=lambda: ["a", "b", "c"])
    USER_AGENT: str = "ozi-map-tools/0.1 (offline tile cache)"
    # 0.5 s between requests = 2 requests per second (OSM tile usage policy)
    REQUEST_DELAY_S: float = Field(default=0.5, ge=0.0)
    REQUEST_TIMEOUT_S: float = Field(default=15.0, gt=0.0)
    DOWNLOAD_DIR: Path = Field(default=Path.home() / "NTA-Tiles")

    # Map registry
    MAPS_DIR: Path = Field(default=Path.home() / ".ozi-maps")

    model_config = {
        "env_prefix": "OZI_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
