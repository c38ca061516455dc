"""Runtime settings read from the environment (and a local .env file)."""

from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_GENRES_URL = "http://localhost:3001/genres"
DEFAULT_CREATE_GAME_URL = "http://localhost:3001/videogames"
DEFAULT_CATALOG_URL = "https://api.rawg.io/api/games"
DEFAULT_CATALOG_DATES = "2019-09-01,2023-05-30"
DEFAULT_CATALOG_PLATFORMS = "18,1,7"

TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    genres_url: str = DEFAULT_GENRES_URL
    create_game_url: str = DEFAULT_CREATE_GAME_URL
    catalog_url: str = DEFAULT_CATALOG_URL
    catalog_api_key: Optional[str] = None
    catalog_dates: str = DEFAULT_CATALOG_DATES
    catalog_platforms: str = DEFAULT_CATALOG_PLATFORMS
    http_timeout: float = 10.0
    reset_on_success: bool = True
    max_forms: int = 100
    form_idle_timeout: float = 1800.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``environ``, loading ``.env`` first when reading os.environ."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        reset_value = environ.get("RESET_ON_SUCCESS")
        return cls(
            genres_url=environ.get("GENRES_URL", DEFAULT_GENRES_URL),
            create_game_url=environ.get("CREATE_GAME_URL", DEFAULT_CREATE_GAME_URL),
            catalog_url=environ.get("CATALOG_URL", DEFAULT_CATALOG_URL),
            catalog_api_key=environ.get("CATALOG_API_KEY") or None,
            catalog_dates=environ.get("CATALOG_DATES", DEFAULT_CATALOG_DATES),
            catalog_platforms=environ.get("CATALOG_PLATFORMS", DEFAULT_CATALOG_PLATFORMS),
            http_timeout=float(environ.get("HTTP_TIMEOUT", "10")),
            reset_on_success=(
                True if reset_value is None else reset_value.strip().lower() in TRUTHY
            ),
            max_forms=int(environ.get("MAX_FORMS", "100")),
            form_idle_timeout=float(environ.get("FORM_IDLE_TIMEOUT", "1800")),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
