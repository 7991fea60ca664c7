import re
from enum import Enum
from typing import List, Optional
from feedgen.feed import FeedGenerator
from pydantic import BaseModel

from .models import Feed

JSON_FEED_VERSION = "https://jsonfeed.org/version/1.1"
FEED_LANGUAGE = "de"

# characters XML 1.0 does not allow, lxml refuses to serialize them
XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


class FeedFormat(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    JSON = "json"


CONTENT_TYPES = {
    FeedFormat.RSS: "application/xml; charset=UTF-8",
    FeedFormat.ATOM: "application/xml",
    FeedFormat.JSON: "application/json",
}


class JSONFeedAuthor(BaseModel):
    name: str


class JSONFeedItem(BaseModel):
    id: str
    url: str
    title: str
    content_text: str
    date_published: str


class JSONFeed(BaseModel):
    version: str = JSON_FEED_VERSION
    title: str
    description: str
    feed_url: Optional[str] = None
    language: str = FEED_LANGUAGE
    authors: List[JSONFeedAuthor]
    items: List[JSONFeedItem]


def xml_safe(text):
    return XML_ILLEGAL.sub("\ufffd", text)


def _feedgen(feed: Feed) -> FeedGenerator:
    """
    Map a Feed onto a feedgen FeedGenerator.

    The feed link doubles as channel link (RSS) and feed id (Atom), so it
    must be set before rendering. Entries are appended so they keep the
    order of feed.items.
    Characters XML cannot carry are replaced by U+FFFD.
    """
    fg = FeedGenerator()
    fg.id(feed.link)
    fg.title(xml_safe(feed.title))
    fg.subtitle(xml_safe(feed.subtitle))
    fg.link(href=feed.link, rel="alternate")
    fg.author({"name": feed.author.name, "email": feed.author.email})
    fg.language(FEED_LANGUAGE)
    fg.updated(feed.created)
    fg.pubDate(feed.created)

    for item in feed.items:
        fe = fg.add_entry(order="append")
        fe.id(xml_safe(item.id))
        fe.guid(xml_safe(item.id), permalink=False)
        fe.title(xml_safe(item.title))
        fe.link(href=item.link, rel="alternate")
        fe.updated(feed.created)
        if item.content:
            fe.description(xml_safe(item.content))
    return fg


def to_rss(feed: Feed) -> str:
    return _feedgen(feed).rss_str(pretty=True).decode("utf-8")


def to_atom(feed: Feed) -> str:
    return _feedgen(feed).atom_str(pretty=True).decode("utf-8")


def to_json(feed: Feed) -> str:
    published = feed.created.isoformat()
    doc = JSONFeed(
        title=feed.title,
        description=feed.subtitle,
        feed_url=feed.link,
        authors=[JSONFeedAuthor(name=feed.author.name)],
        items=[
            JSONFeedItem(
                id=item.id,
                url=item.link,
                title=item.title,
                content_text=item.content,
                date_published=published,
            )
            for item in feed.items
        ],
    )
    return doc.model_dump_json(exclude_none=True, indent=2)


RENDERERS = {
    FeedFormat.RSS: to_rss,
    FeedFormat.ATOM: to_atom,
    FeedFormat.JSON: to_json,
}


def render(feed: Feed, fmt: FeedFormat) -> str:
    return RENDERERS[fmt](feed)
