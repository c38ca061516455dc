"""State machine behind the game creation form.

A ``GameFormController`` is one mounted form: it owns the draft, the error
map and the genre list, and it issues at most one creation request at a time.
``FormRegistry`` keeps the controllers mounted by the web layer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, TypeVar
from uuid import uuid4

from .backend import BackendClient
from .errors import (
    BackendError,
    FormClosedError,
    FormNotFoundError,
    GenresUnavailableError,
    InvalidFieldValueError,
    SubmissionError,
    SubmissionInProgressError,
    UnknownFieldError,
)
from .models import DRAFT_FIELDS, FormSnapshot, GameCreate, GameDraft
from .validation import FormErrorMap, is_submittable, validate_draft

logger = logging.getLogger(__name__)

ERROR_PREFIX = "There was an error!!!"

T = TypeVar("T")


class FormState(str, Enum):
    EDITING = "editing"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _selected_genres(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        raise InvalidFieldValueError("genres must be a list of genre labels.")
    selected: list[str] = []
    for genre in value:
        label = str(genre)
        # "" is the placeholder option of the genre picker.
        if label and label not in selected:
            selected.append(label)
    return selected


def _coerce(field: str, value: Any) -> Any:
    if field == "genres":
        return _selected_genres(value)
    return "" if value is None else str(value)


class GameFormController:
    def __init__(
        self,
        backend: BackendClient,
        form_id: Optional[str] = None,
        reset_on_success: bool = True,
    ) -> None:
        self.backend = backend
        self.form_id = form_id or uuid4().hex
        self.reset_on_success = reset_on_success
        self.state = FormState.EDITING
        self.draft = GameDraft()
        self.errors: FormErrorMap = {}
        self.genres: tuple[str, ...] = ()
        self.genres_loaded = False
        self.genre_error: Optional[str] = None
        self.notice: Optional[str] = None
        self.closed = False
        self._genres_loading = False
        self._tasks: set[asyncio.Future] = set()

    def _ensure_open(self) -> None:
        if self.closed:
            raise FormClosedError(f"Form {self.form_id} is closed.")

    def _genre_options(self) -> Optional[Sequence[str]]:
        return self.genres if self.genres_loaded else None

    @property
    def can_submit(self) -> bool:
        if self.closed or self.state is FormState.SUBMITTING:
            return False
        return is_submittable(self.draft, self._genre_options())

    def snapshot(self) -> FormSnapshot:
        return FormSnapshot(
            form_id=self.form_id,
            state=self.state.value,
            draft=self.draft,
            errors=dict(self.errors),
            genres=list(self.genres),
            genres_loaded=self.genres_loaded,
            genre_error=self.genre_error,
            can_submit=self.can_submit,
            notice=self.notice,
        )

    async def _track(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` as a task that ``close()`` is able to cancel."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if self.closed and task.cancelled():
                raise FormClosedError(
                    f"Form {self.form_id} was closed while a request was in flight."
                ) from None
            raise
        finally:
            self._tasks.discard(task)

    def change_field(self, name: str, value: Any) -> FormSnapshot:
        return self.update_fields({name: value})

    def update_fields(self, changes: Mapping[str, Any]) -> FormSnapshot:
        """Apply field changes and rebuild the error map from the whole draft."""
        self._ensure_open()
        if self.state is FormState.SUBMITTING:
            raise SubmissionInProgressError("Wait for the current submission to finish.")
        unknown = sorted(name for name in changes if name not in DRAFT_FIELDS)
        if unknown:
            raise UnknownFieldError(f"Unknown form field(s): {', '.join(unknown)}")
        if "genres" in changes and not self.genres_loaded:
            raise GenresUnavailableError("Genres have not been loaded yet.")

        values = {name: _coerce(name, value) for name, value in changes.items()}
        self.draft = self.draft.model_copy(update=values)
        self.errors = validate_draft(self.draft, self._genre_options())
        self.notice = None
        self.state = FormState.EDITING
        return self.snapshot()

    async def load_genres(self) -> FormSnapshot:
        """Fetch the genre list once; after a failure, calling again retries."""
        self._ensure_open()
        if self.genres_loaded or self._genres_loading:
            return self.snapshot()

        self._genres_loading = True
        try:
            genres = await self._track(self.backend.fetch_genres())
        except BackendError as exc:
            logger.warning("Genre list unavailable for form %s: %s", self.form_id, exc)
            self.genre_error = str(exc)
        else:
            self.genres = genres
            self.genres_loaded = True
            self.genre_error = None
            logger.debug("Form %s loaded %s genres", self.form_id, len(genres))
        finally:
            self._genres_loading = False
        return self.snapshot()

    async def submit(self) -> FormSnapshot:
        self._ensure_open()
        if self.state is FormState.SUBMITTING:
            raise SubmissionInProgressError("A submission is already in flight.")

        self.errors = validate_draft(self.draft, self._genre_options())
        if self.errors:
            logger.debug(
                "Form %s rejected locally, invalid fields: %s",
                self.form_id,
                ", ".join(sorted(self.errors)),
            )
            self.state = FormState.EDITING
            self.notice = None
            return self.snapshot()

        payload = GameCreate.from_draft(self.draft)
        self.state = FormState.SUBMITTING
        self.notice = None
        try:
            acknowledgement = await self._track(self.backend.create_game(payload))
        except SubmissionError as exc:
            logger.warning("Creating game '%s' failed: %s", payload.name, exc.details)
            self.state = FormState.FAILED
            self.notice = f"{ERROR_PREFIX} {exc.details}"
        else:
            logger.info("Created game '%s' from form %s", payload.name, self.form_id)
            self.state = FormState.SUCCEEDED
            self.notice = acknowledgement
            if self.reset_on_success:
                self.draft = GameDraft()
                self.errors = {}
        finally:
            if self.state is FormState.SUBMITTING:
                self.state = FormState.EDITING
        return self.snapshot()

    def close(self) -> None:
        """Unmount the form and cancel whatever it still has in flight."""
        if self.closed:
            return
        self.closed = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        logger.info("Closed form %s (%s request(s) cancelled)", self.form_id, len(pending))


class FormRegistry:
    """Mounted forms, oldest use first.

    Forms idle for longer than ``idle_timeout`` seconds are closed, and once
    ``max_forms`` are mounted the least recently used one is closed to make room.
    """

    def __init__(
        self,
        backend: BackendClient,
        reset_on_success: bool = True,
        max_forms: int = 100,
        idle_timeout: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.reset_on_success = reset_on_success
        self.max_forms = max_forms
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._forms: OrderedDict[str, GameFormController] = OrderedDict()
        self._last_used: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._forms)

    def _touch(self, form_id: str) -> None:
        self._forms.move_to_end(form_id)
        self._last_used[form_id] = self._clock()

    def _evict(self) -> None:
        now = self._clock()
        for form_id in list(self._forms):
            if now - self._last_used[form_id] < self.idle_timeout:
                break
            logger.info(
                "Closing form %s after %.0fs idle", form_id, now - self._last_used[form_id]
            )
            self.close(form_id)
        while self._forms and len(self._forms) >= self.max_forms:
            form_id = next(iter(self._forms))
            logger.info("Closing form %s, %s forms mounted", form_id, len(self._forms))
            self.close(form_id)

    async def open(self) -> GameFormController:
        self._evict()
        controller = GameFormController(
            self.backend, reset_on_success=self.reset_on_success
        )
        self._forms[controller.form_id] = controller
        self._touch(controller.form_id)
        logger.debug("Mounted form %s", controller.form_id)
        await controller.load_genres()
        return controller

    def get(self, form_id: str) -> GameFormController:
        controller = self._forms.get(form_id)
        if controller is None:
            raise FormNotFoundError(f"Form {form_id} not found.")
        self._touch(form_id)
        return controller

    def close(self, form_id: str) -> None:
        controller = self._forms.pop(form_id, None)
        self._last_used.pop(form_id, None)
        if controller is None:
            raise FormNotFoundError(f"Form {form_id} not found.")
        controller.close()

    def close_all(self) -> None:
        for form_id in list(self._forms):
            self.close(form_id)
