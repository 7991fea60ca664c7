from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from typing import Dict, List, Optional, Protocol
import asyncio
import os
import random
import logging
from urllib.parse import quote
from dotenv import load_dotenv

from generator.models import Feed
from generator.render import CONTENT_TYPES, FeedFormat, render
from generator.utils import FeedGenerationError

load_dotenv()
FEED_BASE_URL = os.getenv("FEED_BASE_URL", "https://api.grube.fund/")
FEED_CACHE_MAX_AGE = int(os.getenv("FEED_CACHE_MAX_AGE", str(60 * 60)))
FEED_CACHE_JITTER = os.getenv("FEED_CACHE_JITTER", "true").lower() in ("1", "true", "yes")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))
MAX_AGE_JITTER = 15 * 60

logger = logging.getLogger("api.feeds")

router = APIRouter()


class FeedBuilder(Protocol):
    async def build_feed(
        self,
        brands: List[str],
        category_ids: List[str],
        outlet_ids: Optional[List[str]] = None,
        keyword: str = "",
    ) -> Feed: ...


# populated by api.main with one generator per store
GENERATORS: Dict[str, FeedBuilder] = {}


def get_generator(store: str) -> FeedBuilder:
    generator = GENERATORS.get(store)
    if generator is None:
        raise HTTPException(status_code=404, detail="Unknown store")
    return generator


def split_list(value):
    return [v for v in (value or "").split(",") if v]


def parse_required_brands(brands):
    parsed = split_list(brands)
    if not parsed:
        raise HTTPException(status_code=400, detail="No brands given")
    return parsed


def parse_required_category_ids(category_ids):
    parsed = split_list(category_ids)
    if not parsed:
        raise HTTPException(status_code=400, detail="No category ids given")
    return parsed


def build_feed_url(request: Request) -> str:
    """Re-base the request's own escaped path and query onto the public FEED_BASE_URL."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # some clients put the query string into raw_path as well
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = quote(request.url.path)
    url = f"{FEED_BASE_URL.rstrip('/')}/{path.lstrip('/')}"
    if request.url.query:
        url += f"?{request.url.query}"
    return url


def random_max_age():
    """
    Calculate the Cache-Control max age for a feed response.

    With FEED_CACHE_JITTER enabled the max age is shifted by a random offset
    of up to +/- 15 minutes, so feeds fetched at the same time do not all
    expire at the same time.

    Returns:
        int: Max age in seconds
    """
    if not FEED_CACHE_JITTER:
        return FEED_CACHE_MAX_AGE
    return FEED_CACHE_MAX_AGE + random.randint(-MAX_AGE_JITTER, MAX_AGE_JITTER)


@router.get("/feed/v1/{store}/{format}")
async def get_feed(
    request: Request,
    format: str,
    brands: Optional[str] = Query(None),
    category_ids: Optional[str] = Query(None, alias="categorieIds"),
    outlet_ids: Optional[str] = Query(None, alias="outletIds"),
    text: Optional[str] = Query(None),
    generator: FeedBuilder = Depends(get_generator),
):
    """
    Serve the clearance postings matching the given filters as a feed.

    Args:
        request (Request): Incoming request, used for the feed's self link
        format (str): One of 'rss', 'atom' or 'json'
        brands (str): Comma-separated brand names (required)
        category_ids (str): Comma-separated category ids, passed as
            'categorieIds' like the retailer's own site spells it (required)
        outlet_ids (str, optional): Comma-separated outlet ids
        text (str, optional): Free-text keyword
        generator (FeedBuilder): Feed generator of the requested store

    Returns:
        Response: Serialized feed with Content-Type and Cache-Control set

    Raises:
        HTTPException: 400 on invalid format or missing brands/categories,
            500 if the postings could not be fetched or transformed,
            503 if fetching them took longer than REQUEST_TIMEOUT
    """
    try:
        fmt = FeedFormat(format)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid format")

    brand_list = parse_required_brands(brands)
    category_list = parse_required_category_ids(category_ids)
    outlet_list = split_list(outlet_ids)
    keyword = text or ""

    try:
        feed = await asyncio.wait_for(
            generator.build_feed(brand_list, category_list, outlet_list, keyword),
            timeout=REQUEST_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.error(f"Building feed for {request.url.path} timed out after {REQUEST_TIMEOUT}s")
        raise HTTPException(status_code=503, detail="Service Unavailable")
    except FeedGenerationError:
        logger.exception(f"Failed to build feed for {request.url.path}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    feed.link = build_feed_url(request)
    content = render(feed, fmt)

    return Response(
        content=content,
        media_type=CONTENT_TYPES[fmt],
        headers={"Cache-Control": f"max-age={random_max_age()}, must-revalidate"},
    )
