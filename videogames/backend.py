"""HTTP client for the custom backend: genre list and game creation."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .errors import BackendError, SubmissionError
from .models import GameCreate

logger = logging.getLogger(__name__)

ERROR_KEYS = ("error", "message", "detail")


def _error_details(response: httpx.Response) -> str:
    """Pull the most human-readable message out of a failed response."""
    try:
        payload: Any = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    if isinstance(payload, dict):
        for key in ERROR_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    text = response.text.strip()
    if text:
        return text
    return f"Request failed with status code {response.status_code}"


def _acknowledgement(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return response.text


class BackendClient:
    def __init__(
        self,
        genres_url: str,
        create_game_url: str,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.genres_url = genres_url
        self.create_game_url = create_game_url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_genres(self) -> tuple[str, ...]:
        try:
            response = await self._http.get(self.genres_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(f"Unable to load genres: {exc}") from exc

        if not isinstance(payload, list):
            raise BackendError("Genre list must be a JSON array.")

        genres: list[str] = []
        for entry in payload:
            # Accept both ["Action", ...] and [{"name": "Action"}, ...].
            name = entry.get("name") if isinstance(entry, dict) else entry
            if not isinstance(name, str):
                raise BackendError(f"Unexpected genre entry: {entry!r}")
            genres.append(name)
        logger.debug("Genre list returned %s entries", len(genres))
        return tuple(genres)

    async def create_game(self, game: GameCreate) -> str:
        """Send one creation request and return the backend's acknowledgement."""
        try:
            response = await self._http.post(self.create_game_url, json=game.model_dump())
        except httpx.HTTPError as exc:
            raise SubmissionError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            details = _error_details(response)
            logger.debug(
                "Create game '%s' rejected with status %s: %s",
                game.name,
                response.status_code,
                details,
            )
            raise SubmissionError(details, status_code=response.status_code)
        return _acknowledgement(response)
