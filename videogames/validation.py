"""Field checks for the game creation form.

Everything here is a pure function of the draft so it can run on every
keystroke without touching the network or the disk.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, Optional, Sequence

from pydantic import HttpUrl, TypeAdapter, ValidationError

from .models import GameDraft

RATING_MIN = 0.0
RATING_MAX = 5.0
DATE_FORMAT = "%Y-%m-%d"
IMAGE_URL = TypeAdapter(HttpUrl)

REQUIRED_TEXT_FIELDS = {
    "name": "Name is required.",
    "description": "Description is required.",
    "platforms": "Platforms are required.",
    "background_image": "Background image is required.",
}

FormErrorMap = Dict[str, str]


def _is_blank(value: str) -> bool:
    return not value or not value.strip()


def _check_image_url(value: str) -> Optional[str]:
    try:
        IMAGE_URL.validate_python(value.strip())
    except ValidationError:
        return "Background image must be an http(s) URL."
    return None


def _check_released(value: str) -> Optional[str]:
    if _is_blank(value):
        return "Release date is required."
    try:
        datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError:
        return "Release date must be a valid date (YYYY-MM-DD)."
    return None


def _check_rating(value: str) -> Optional[str]:
    if _is_blank(value):
        return "Rating is required."
    try:
        rating = float(value.strip())
    except ValueError:
        return "Rating must be a number."
    if not math.isfinite(rating) or not RATING_MIN <= rating <= RATING_MAX:
        return f"Rating must be between {RATING_MIN:g} and {RATING_MAX:g}."
    return None


def _check_genres(
    genres: Sequence[str], genre_options: Optional[Sequence[str]]
) -> Optional[str]:
    if not genres:
        return "Select at least one genre."
    if genre_options is not None:
        unknown = [genre for genre in genres if genre not in genre_options]
        if unknown:
            return f"Unknown genre: {', '.join(unknown)}."
    return None


def validate_draft(
    draft: GameDraft, genre_options: Optional[Sequence[str]] = None
) -> FormErrorMap:
    """Return one message per invalid field; an empty map means the draft is valid.

    ``genre_options`` is the loaded genre list. When given, selected genres
    must come from it; when ``None`` only presence is checked.
    """
    errors: FormErrorMap = {}
    for field, message in REQUIRED_TEXT_FIELDS.items():
        if _is_blank(getattr(draft, field)):
            errors[field] = message

    if "background_image" not in errors:
        url_error = _check_image_url(draft.background_image)
        if url_error:
            errors["background_image"] = url_error

    checks = (
        ("released", _check_released(draft.released)),
        ("rating", _check_rating(draft.rating)),
        ("genres", _check_genres(draft.genres, genre_options)),
    )
    for field, message in checks:
        if message:
            errors[field] = message
    return errors


def is_submittable(
    draft: GameDraft, genre_options: Optional[Sequence[str]] = None
) -> bool:
    return not validate_draft(draft, genre_options)
