"""Third-party game catalog client and the start-up game list loader."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from .errors import CatalogError
from .models import GameSummary

logger = logging.getLogger(__name__)


class CatalogClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_games(self, dates: str, platforms: str) -> list[GameSummary]:
        params: Dict[str, str] = {"dates": dates, "platforms": platforms}
        if self.api_key:
            params["key"] = self.api_key
        try:
            response = await self._http.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CatalogError(f"Unable to fetch catalog: {exc}") from exc

        if not isinstance(payload, dict):
            raise CatalogError("Catalog response must be a JSON object.")
        records = payload.get("results") or []
        if not isinstance(records, list):
            raise CatalogError("Catalog results must be a JSON array.")
        try:
            games = [GameSummary.from_catalog_record(record) for record in records]
        except (ValidationError, AttributeError, TypeError) as exc:
            raise CatalogError(f"Unexpected catalog record: {exc}") from exc
        logger.debug(
            "Catalog query dates=%s platforms=%s returned %s games",
            dates,
            platforms,
            len(games),
        )
        return games


class GameListLoader:
    """Loads the catalog once and keeps whatever it got, possibly nothing."""

    def __init__(self, client: CatalogClient, dates: str, platforms: str) -> None:
        self.client = client
        self.dates = dates
        self.platforms = platforms
        self.games: list[GameSummary] = []
        self.loaded = False

    async def load(self) -> list[GameSummary]:
        if self.loaded:
            return self.games
        self.loaded = True
        try:
            self.games = await self.client.fetch_games(self.dates, self.platforms)
        except CatalogError as exc:
            logger.warning("Failed to load the game list: %s", exc)
            self.games = []
        else:
            logger.info("Loaded %s games from the catalog.", len(self.games))
        return self.games
