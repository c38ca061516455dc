"""FastAPI entry point for the videogames client."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import APIRouter, Body, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .backend import BackendClient
from .catalog import CatalogClient, GameListLoader
from .config import Settings
from .errors import (
    FormClosedError,
    FormError,
    FormNotFoundError,
    GenresUnavailableError,
    InvalidFieldValueError,
    SubmissionInProgressError,
    UnknownFieldError,
)
from .form import FormRegistry, FormState, GameFormController
from .models import FormSnapshot, GameCollection

logger = logging.getLogger(__name__)

FORM_ERROR_STATUS = {
    FormNotFoundError: status.HTTP_404_NOT_FOUND,
    FormClosedError: status.HTTP_410_GONE,
    UnknownFieldError: status.HTTP_400_BAD_REQUEST,
    InvalidFieldValueError: status.HTTP_400_BAD_REQUEST,
    SubmissionInProgressError: status.HTTP_409_CONFLICT,
    GenresUnavailableError: status.HTTP_409_CONFLICT,
}

api_router = APIRouter(prefix="/api")


def _http_error(exc: FormError) -> HTTPException:
    status_code = FORM_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=str(exc))


def _form(request: Request, form_id: str) -> GameFormController:
    registry: FormRegistry = request.app.state.forms
    try:
        return registry.get(form_id)
    except FormNotFoundError as exc:
        raise _http_error(exc) from exc


@api_router.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})


@api_router.get("/games", response_model=GameCollection)
async def list_games(request: Request) -> GameCollection:
    loader: GameListLoader = request.app.state.game_list
    return GameCollection(games=loader.games)


@api_router.post(
    "/forms", response_model=FormSnapshot, status_code=status.HTTP_201_CREATED
)
async def open_form(request: Request) -> FormSnapshot:
    registry: FormRegistry = request.app.state.forms
    try:
        controller = await registry.open()
    except FormError as exc:
        raise _http_error(exc) from exc
    return controller.snapshot()


@api_router.get("/forms/{form_id}", response_model=FormSnapshot)
async def get_form(form_id: str, request: Request) -> FormSnapshot:
    return _form(request, form_id).snapshot()


@api_router.patch("/forms/{form_id}", response_model=FormSnapshot)
async def change_fields(
    form_id: str, request: Request, changes: Dict[str, Any] = Body(...)
) -> FormSnapshot:
    controller = _form(request, form_id)
    try:
        return controller.update_fields(changes)
    except FormError as exc:
        raise _http_error(exc) from exc


@api_router.post("/forms/{form_id}/genres", response_model=FormSnapshot)
async def reload_genres(form_id: str, request: Request) -> FormSnapshot:
    controller = _form(request, form_id)
    try:
        return await controller.load_genres()
    except FormError as exc:
        raise _http_error(exc) from exc


@api_router.post("/forms/{form_id}/submit", response_model=FormSnapshot)
async def submit_form(form_id: str, request: Request) -> Any:
    controller = _form(request, form_id)
    try:
        snapshot = await controller.submit()
    except FormError as exc:
        raise _http_error(exc) from exc
    if snapshot.state == FormState.EDITING.value and snapshot.errors:
        return JSONResponse(
            status_code=422,
            content=snapshot.model_dump(),
        )
    return snapshot


@api_router.delete("/forms/{form_id}")
async def close_form(form_id: str, request: Request) -> JSONResponse:
    registry: FormRegistry = request.app.state.forms
    try:
        registry.close(form_id)
    except FormError as exc:
        raise _http_error(exc) from exc
    return JSONResponse({"closed": True})


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application; ``transport`` replaces the network in tests."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(
            level=getattr(logging, settings.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        if not settings.catalog_api_key:
            logger.warning("CATALOG_API_KEY not set. Catalog requests may be refused.")

        http = httpx.AsyncClient(timeout=settings.http_timeout, transport=transport)
        backend = BackendClient(settings.genres_url, settings.create_game_url, http=http)
        catalog = CatalogClient(settings.catalog_url, settings.catalog_api_key, http=http)
        app.state.settings = settings
        app.state.forms = FormRegistry(
            backend,
            reset_on_success=settings.reset_on_success,
            max_forms=settings.max_forms,
            idle_timeout=settings.form_idle_timeout,
        )
        app.state.game_list = GameListLoader(
            catalog, settings.catalog_dates, settings.catalog_platforms
        )
        await app.state.game_list.load()
        try:
            yield
        finally:
            app.state.forms.close_all()
            await http.aclose()

    app = FastAPI(
        title="Videogames Client",
        description="Browse the game catalog and register new games.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    return app


app = create_app()
