import os
from datetime import datetime, timezone
from httpx import AsyncClient, HTTPError
from pydantic import ValidationError
from dotenv import load_dotenv
import logging

from .models import Author, Feed, PostingsResponse
from .utils import FeedGenerationError, format_feed_subtitle, to_feed_item

load_dotenv()
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "5"))

PER_PAGE = 100
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
)
FEED_AUTHOR = Author(name="grube.fund", email="feed@grube.fund")

logger = logging.getLogger("generator")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
logger.addHandler(handler)


class Generator:
    def __init__(self, store, api_base_uri, web_base_uri, transport=None):
        self.store = store
        self.api_base_uri = api_base_uri
        self.web_base_uri = web_base_uri
        self.client = AsyncClient(
            timeout=UPSTREAM_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    async def close(self):
        """Close the upstream HTTP client."""
        await self.client.aclose()

    async def build_feed(self, brands, category_ids, outlet_ids=None, keyword=""):
        """
        Fetch all postings matching the filters and turn them into a feed.

        Args:
            brands (list[str]): Brand names, at least one
            category_ids (list[str]): Top level category ids, at least one
            outlet_ids (list[str], optional): Outlet ids to narrow the search to
            keyword (str, optional): Free-text search term

        Returns:
            Feed: Feed whose items follow upstream pagination order

        Raises:
            FeedGenerationError: If any page cannot be fetched or any posting
                cannot be transformed. No partial feed is returned.
        """
        postings = await self.fetch(brands, category_ids, outlet_ids, keyword)

        feed = Feed(
            title=f"Fundgrube Artikel von {self.store}",
            author=FEED_AUTHOR,
            subtitle=format_feed_subtitle(brands, category_ids, outlet_ids, keyword),
            created=datetime.now(timezone.utc),
        )
        feed.items = [to_feed_item(p, self.web_base_uri) for p in postings]
        return feed

    async def fetch(self, brands, category_ids, outlet_ids=None, keyword=""):
        """
        Page through the postings API until no more postings are available.

        Requests pages of PER_PAGE postings, advancing the offset after each
        page, until the API reports morePostingsAvailable=false or answers
        422, which it does once the offset exceeds the number of postings it
        is willing to return (roughly 990). Every other non-200 status aborts.

        Returns:
            list[Posting]: All postings in the order the API returned them

        Raises:
            FeedGenerationError: On network errors, unexpected status codes or
                malformed response bodies
        """
        postings = []
        offset = 0
        has_more = True
        while has_more:
            params = self.build_params(PER_PAGE, offset, brands, category_ids, outlet_ids, keyword)
            logger.debug(f"{self.store}: fetching postings offset={offset}")
            try:
                resp = await self.client.get(self.api_base_uri, params=params)
            except HTTPError as e:
                raise FeedGenerationError(f"Failed to fetch postings from {self.store}: {e}") from e

            if resp.status_code != 200:
                if resp.status_code == 422:
                    break
                raise FeedGenerationError(
                    f"Failed to fetch postings, received unexpected status code: "
                    f"{resp.status_code} ({resp.reason_phrase})"
                )

            try:
                page = PostingsResponse.model_validate_json(resp.content)
            except ValidationError as e:
                raise FeedGenerationError(f"Malformed postings response from {self.store}") from e

            postings.extend(page.postings)
            has_more = page.has_more
            offset += PER_PAGE

        logger.debug(f"{self.store}: fetched {len(postings)} postings")
        return postings

    def build_params(self, limit, offset, brands, category_ids, outlet_ids=None, keyword=""):
        params = [
            ("limit", str(limit)),
            ("offset", str(offset)),
            ("brands", ",".join(brands)),
            ("categorieIds", ",".join(category_ids)),
            ("text", keyword or ""),
        ]
        if outlet_ids:
            params.append(("outletIds", ",".join(outlet_ids)))
        return params
