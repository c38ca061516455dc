"""Pydantic models shared across the videogames client."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

TEXT_FIELDS = ("name", "description", "platforms", "background_image", "released", "rating")
DRAFT_FIELDS = TEXT_FIELDS + ("genres",)


class GameDraft(BaseModel):
    """In-progress game record held by a form while the user types."""

    name: str = ""
    description: str = ""
    platforms: str = ""
    background_image: str = ""
    released: str = ""
    rating: str = ""
    genres: list[str] = Field(default_factory=list)


class GameCreate(BaseModel):
    """Body of the game-creation request sent to the backend."""

    name: str
    description: str
    platforms: str
    background_image: str
    released: str
    rating: float
    genres: list[str]

    @classmethod
    def from_draft(cls, draft: GameDraft) -> "GameCreate":
        return cls(
            name=draft.name.strip(),
            description=draft.description.strip(),
            platforms=draft.platforms.strip(),
            background_image=draft.background_image.strip(),
            released=draft.released.strip(),
            rating=float(draft.rating.strip()),
            genres=list(draft.genres),
        )


class GameSummary(BaseModel):
    """Catalog entry the frontend knows how to render in the game list."""

    id: Optional[int] = None
    name: str
    background_image: Optional[str] = None
    released: Optional[str] = None
    rating: Optional[float] = None
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)

    @classmethod
    def from_catalog_record(cls, record: Dict[str, Any]) -> "GameSummary":
        genres = [entry.get("name") for entry in record.get("genres") or []]
        platforms = []
        for entry in record.get("platforms") or []:
            # The catalog nests the platform under a "platform" key.
            platform = entry.get("platform") or entry
            platforms.append(platform.get("name"))
        return cls(
            id=record.get("id"),
            name=record.get("name") or "Untitled Game",
            background_image=record.get("background_image"),
            released=record.get("released"),
            rating=record.get("rating"),
            genres=[name for name in genres if name],
            platforms=[name for name in platforms if name],
        )


class GameCollection(BaseModel):
    games: list[GameSummary]


class FormSnapshot(BaseModel):
    """What a caller sees of a mounted form."""

    form_id: str
    state: str
    draft: GameDraft
    errors: Dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)
    genres_loaded: bool = False
    genre_error: Optional[str] = None
    can_submit: bool = False
    notice: Optional[str] = None
