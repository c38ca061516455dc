import httpx
import pytest

from videogames.backend import BackendClient
from videogames.models import GameDraft

GENRES_URL = "http://backend.test/genres"
CREATE_GAME_URL = "http://backend.test/videogames"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def valid_draft():
    return GameDraft(
        name="Foo",
        description="Bar",
        platforms="PC",
        background_image="http://x/y.png",
        released="2020-01-01",
        rating="4.5",
        genres=["Action"],
    )


@pytest.fixture
def make_backend():
    """Build a BackendClient whose HTTP calls are answered by ``handler``."""
    clients = []

    def factory(handler):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(http)
        return BackendClient(GENRES_URL, CREATE_GAME_URL, http=http)

    return factory
