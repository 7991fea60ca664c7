from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime


class UpstreamModel(BaseModel):
    """Base for API payloads: a JSON null falls back to the field default."""

    @field_validator("*", mode="before")
    @classmethod
    def null_to_default(cls, value, info):
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class Brand(UpstreamModel):
    id: int = 0
    name: str = ""


class Outlet(UpstreamModel):
    id: int = 0
    name: str = ""


class Posting(UpstreamModel):
    """One clearance listing as returned by the postings API."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field("", alias="posting_id")
    text: str = Field("", alias="posting_text")
    product_name: str = Field("", alias="name")
    product_id: int = Field(0, alias="pim_id")
    category_id: str = Field("", alias="top_level_catalog_id")
    price: str = ""  # decimal string, e.g. "19.99"
    shipping_cost: float = 0.0
    brand: Brand = Field(default_factory=Brand)
    outlet: Outlet = Field(default_factory=Outlet)


class PostingsResponse(UpstreamModel):
    model_config = ConfigDict(populate_by_name=True)

    postings: List[Posting] = Field(default_factory=list)
    has_more: bool = Field(False, alias="morePostingsAvailable")


class Author(BaseModel):
    name: str
    email: Optional[str] = None


class FeedItem(BaseModel):
    title: str
    link: str
    id: str
    content: str = ""


class Feed(BaseModel):
    title: str
    author: Author
    subtitle: str
    created: datetime
    link: Optional[str] = None
    items: List[FeedItem] = Field(default_factory=list)
