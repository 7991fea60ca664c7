import sys
import os

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT_DIR)

import pytest
from datetime import datetime, timezone
from typing import Any, Dict, List
from httpx import ASGITransport, AsyncClient, MockTransport, Response

from api.main import app
from api.feeds import get_generator
from generator.generator import Generator
from generator.models import Author, Feed, FeedItem
from generator.utils import FeedGenerationError

API_URL = "https://shop.example/de/data/fundgrube/api/postings"
WEB_URL = "https://shop.example/de/data/fundgrube"


def make_posting(n: int, price: str = "19.99", shipping_cost: float = 0.0) -> Dict[str, Any]:
    """
    Build a posting dict shaped like the upstream postings API returns it.

    Args:
        n (int): Running number used to derive ids and names
        price (str): Decimal price string
        shipping_cost (float): Shipping cost, 0.0 meaning free shipping

    Returns:
        dict: Raw posting with upstream field names
    """
    return {
        "posting_id": f"posting-{n}",
        "posting_text": f"Ausstellungsstück {n}",
        "name": f"Product{n}",
        "pim_id": 1000 + n,
        "top_level_catalog_id": "CAT_DE_SAT_786",
        "price": price,
        "shipping_cost": shipping_cost,
        "brand": {"id": 1, "name": "SONY"},
        "outlet": {"id": 418, "name": "Hamburg"},
    }


def page(postings: List[Dict[str, Any]], more: bool) -> Response:
    return Response(200, json={"postings": postings, "morePostingsAvailable": more})


class Upstream:
    """
    Scripted postings API.

    Hands out the queued responses in order, one per request, and records
    every request so tests can inspect query parameters and headers.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected upstream request: {request.url}")
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def generator(self, store="Saturn"):
        return Generator(store, API_URL, WEB_URL, transport=MockTransport(self))


@pytest.fixture
def upstream():
    """Factory fixture: upstream(resp1, resp2, ...) -> Upstream."""
    return lambda *responses: Upstream(responses)


class FakeGenerator:
    def __init__(self, feed=None, error=None):
        self.feed = feed
        self.error = error
        self.calls = []

    async def build_feed(self, brands, category_ids, outlet_ids=None, keyword=""):
        self.calls.append((brands, category_ids, outlet_ids, keyword))
        if self.error is not None:
            raise self.error
        return self.feed.model_copy(deep=True)


@pytest.fixture
def sample_feed():
    return Feed(
        title="Fundgrube Artikel von Saturn",
        author=Author(name="grube.fund", email="feed@grube.fund"),
        subtitle="Marken: SONY/Kategorien: CAT_DE_SAT_786",
        created=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        items=[
            FeedItem(
                title="Product1 - 19,99€ (Versand: kostenlos)",
                link=f"{WEB_URL}?brands=SONY&categorieIds=CAT_DE_SAT_786&outletIds=418&text=1001",
                id="posting-1",
                content="Ausstellungsstück 1",
            ),
            FeedItem(
                title="Product2 - 1.299,00€ (Versand: 4,99€)",
                link=f"{WEB_URL}?brands=SONY&categorieIds=CAT_DE_SAT_786&outletIds=418&text=1002",
                id="posting-2",
                content="Ausstellungsstück 2",
            ),
        ],
    )


@pytest.fixture
def fake_generator(sample_feed):
    return FakeGenerator(feed=sample_feed)


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=FeedGenerationError("upstream said 502 (Bad Gateway)"))


@pytest.fixture
async def make_client():
    """
    Factory fixture for test clients bound to a given generator.

    Overrides the get_generator dependency so every store resolves to the
    passed generator, and talks to the app in-memory via ASGITransport.
    Overrides are cleared on teardown.
    """
    clients = []

    async def _make(generator):
        app.dependency_overrides[get_generator] = lambda: generator
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield _make

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
async def client(make_client, fake_generator):
    return await make_client(fake_generator)
