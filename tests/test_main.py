import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from videogames.config import Settings
from videogames.main import create_app

GENRES = ["Action", "Adventure", "RPG"]

FILLED = {
    "name": "Foo",
    "description": "Bar",
    "platforms": "PC",
    "background_image": "http://x/y.png",
    "released": "2020-01-01",
    "rating": "4.5",
    "genres": ["Action"],
}

SETTINGS = Settings(
    genres_url="http://backend.test/genres",
    create_game_url="http://backend.test/videogames",
    catalog_url="http://catalog.test/api/games",
    catalog_api_key="secret",
)


class Upstream:
    """Fake backend and catalog answering on their test hosts."""

    def __init__(self):
        self.catalog_status = 200
        self.catalog_body = {"results": [{"id": 1, "name": "Portal 2", "rating": 4.6}]}
        self.genre_failures = 0
        self.create_response = httpx.Response(201, json="Videogame created")
        self.posts = []

    def __call__(self, request):
        if request.url.host == "catalog.test":
            if self.catalog_status != 200:
                return httpx.Response(self.catalog_status, text="catalog down")
            return httpx.Response(200, json=self.catalog_body)
        if request.method == "GET":
            if self.genre_failures:
                self.genre_failures -= 1
                return httpx.Response(503, text="genres down")
            return httpx.Response(200, json=GENRES)
        self.posts.append(request.content)
        return self.create_response


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def client(upstream):
    app = create_app(SETTINGS, transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        yield test_client


def open_form(client):
    response = client.post("/api/forms")
    assert response.status_code == 201
    return response.json()


def test_healthcheck(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_game_list_loaded_at_startup(client):
    games = client.get("/api/games").json()["games"]
    assert [game["name"] for game in games] == ["Portal 2"]


def test_game_list_empty_when_catalog_fails(upstream):
    upstream.catalog_status = 503
    app = create_app(SETTINGS, transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        assert test_client.get("/api/games").json() == {"games": []}


def test_open_form_loads_genres(client):
    form = open_form(client)
    assert form["state"] == "editing"
    assert form["genres"] == GENRES
    assert form["genres_loaded"] is True
    assert form["can_submit"] is False


def test_patch_then_submit(client, upstream):
    form = open_form(client)
    url = f"/api/forms/{form['form_id']}"

    patched = client.patch(url, json=FILLED).json()
    assert patched["errors"] == {}
    assert patched["can_submit"] is True

    submitted = client.post(f"{url}/submit")
    assert submitted.status_code == 200
    body = submitted.json()
    assert body["state"] == "succeeded"
    assert body["notice"] == "Videogame created"
    assert len(upstream.posts) == 1


def test_submit_invalid_form_returns_errors(client, upstream):
    form = open_form(client)
    url = f"/api/forms/{form['form_id']}"
    client.patch(url, json=dict(FILLED, rating=""))

    response = client.post(f"{url}/submit")

    assert response.status_code == 422
    assert list(response.json()["errors"]) == ["rating"]
    assert upstream.posts == []


def test_server_rejection_is_reported(client, upstream):
    upstream.create_response = httpx.Response(409, json={"error": "duplicate name"})
    form = open_form(client)
    url = f"/api/forms/{form['form_id']}"
    client.patch(url, json=FILLED)

    body = client.post(f"{url}/submit").json()

    assert body["state"] == "failed"
    assert body["notice"] == "There was an error!!! duplicate name"
    assert body["draft"]["name"] == "Foo"
    assert client.get(url).json()["draft"]["rating"] == "4.5"


def test_unknown_field_is_bad_request(client):
    form = open_form(client)
    response = client.patch(f"/api/forms/{form['form_id']}", json={"price": 3})
    assert response.status_code == 400


def test_closed_form_is_forgotten(client):
    form = open_form(client)
    url = f"/api/forms/{form['form_id']}"

    assert client.delete(url).json() == {"closed": True}
    assert client.get(url).status_code == 404
    assert client.delete(url).status_code == 404


@pytest.mark.parametrize(
    "body",
    [
        {"results": [{"id": 1, "name": 42}]},
        {"results": [{"name": "X", "genres": [None]}]},
        {"results": "oops"},
    ],
)
def test_malformed_catalog_does_not_block_startup(upstream, body):
    upstream.catalog_body = body
    app = create_app(SETTINGS, transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        assert test_client.get("/api/games").json() == {"games": []}
        assert test_client.get("/api/health").status_code == 200


def test_genre_retry_endpoint(client, upstream):
    upstream.genre_failures = 1
    form = open_form(client)
    url = f"/api/forms/{form['form_id']}"
    assert form["genres_loaded"] is False
    assert form["genre_error"]

    response = client.patch(url, json={"genres": ["Action"]})
    assert response.status_code == 409

    retried = client.post(f"{url}/genres")
    assert retried.status_code == 200
    assert retried.json()["genres"] == GENRES
    assert retried.json()["genre_error"] is None

    patched = client.patch(url, json={"genres": ["Action"]})
    assert patched.status_code == 200
    assert patched.json()["draft"]["genres"] == ["Action"]


def test_non_list_genres_is_bad_request(client):
    form = open_form(client)
    response = client.patch(f"/api/forms/{form['form_id']}", json={"genres": 5})
    assert response.status_code == 400


class SlowUpstream(Upstream):
    """Creation requests hang until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def __call__(self, request):
        if request.method == "POST":
            self.posts.append(request.content)
            await self.release.wait()
            return self.create_response
        return super().__call__(request)


async def wait_for_post(upstream):
    for _ in range(100):
        if upstream.posts:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("creation request never reached the backend")


async def start_submission(upstream):
    app = create_app(SETTINGS, transport=httpx.MockTransport(upstream))
    lifespan = app.router.lifespan_context(app)
    await lifespan.__aenter__()
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://app.test"
    )
    form = (await client.post("/api/forms")).json()
    url = f"/api/forms/{form['form_id']}"
    await client.patch(url, json=FILLED)
    pending = asyncio.ensure_future(client.post(f"{url}/submit"))
    await wait_for_post(upstream)
    return client, lifespan, url, pending


@pytest.mark.anyio
async def test_submit_while_in_flight_is_conflict():
    upstream = SlowUpstream()
    client, lifespan, url, pending = await start_submission(upstream)
    try:
        second = await client.post(f"{url}/submit")
        assert second.status_code == 409
        patched = await client.patch(url, json={"name": "Other"})
        assert patched.status_code == 409

        upstream.release.set()
        first = await pending
        assert first.status_code == 200
        assert first.json()["state"] == "succeeded"
        assert len(upstream.posts) == 1
    finally:
        await client.aclose()
        await lifespan.__aexit__(None, None, None)


@pytest.mark.anyio
async def test_form_closed_mid_flight_is_gone():
    upstream = SlowUpstream()
    client, lifespan, url, pending = await start_submission(upstream)
    try:
        closed = await client.delete(url)
        assert closed.json() == {"closed": True}

        first = await pending
        assert first.status_code == 410
    finally:
        await client.aclose()
        await lifespan.__aexit__(None, None, None)
