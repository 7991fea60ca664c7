from decimal import Decimal, InvalidOperation
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from babel.numbers import format_decimal

from .models import FeedItem, Posting

LOCALE = "de_DE"
AMOUNT_FORMAT = "#,##0.00"
FREE_SHIPPING = "kostenlos"


class FeedGenerationError(Exception):
    """Raised when postings cannot be fetched or turned into a feed."""


def parse_price(price):
    """
    Parse the decimal price string of a posting.

    Args:
        price (str): Price as delivered by the API, e.g. "19.99"

    Returns:
        Decimal: The parsed price

    Raises:
        FeedGenerationError: If the value is not a finite, non-negative decimal
    """
    try:
        value = Decimal(price.strip())
    except (InvalidOperation, AttributeError) as e:
        raise FeedGenerationError(f"Invalid posting price: {price!r}") from e
    if not value.is_finite() or value < 0:
        raise FeedGenerationError(f"Invalid posting price: {price!r}")
    return value


def format_amount(amount):
    """Format an amount the German way with two decimals, e.g. 1.234,50€."""
    return format_decimal(amount, format=AMOUNT_FORMAT, locale=LOCALE) + "€"


def format_item_title(product_name, price, shipping_cost):
    """
    Build the display title of a feed item.

    Shipping is rendered as "kostenlos" when it is exactly zero, otherwise
    as a German-formatted euro amount.

    Example:
        >>> format_item_title("ProductX", Decimal("19.99"), 0.0)
        'ProductX - 19,99€ (Versand: kostenlos)'
    """
    if shipping_cost == 0.0:
        shipping = FREE_SHIPPING
    else:
        shipping = format_amount(shipping_cost)
    return f"{product_name} - {format_amount(price)} (Versand: {shipping})"


def format_feed_subtitle(brands, category_ids, outlet_ids=None, keyword=""):
    subtitle = f"Marken: {', '.join(brands)}/Kategorien: {', '.join(category_ids)}"
    if outlet_ids:
        subtitle += f"/Märkte: {', '.join(outlet_ids)}"
    if keyword:
        subtitle += f"/Stichwort: {keyword}"
    return subtitle


def build_web_url(posting: Posting, base_uri: str) -> str:
    """
    Build the storefront deep link for a posting.

    Copies the query parameter conventions of the retailer's own Fundgrube
    page onto the base URL so the link opens a search narrowed down to the
    posting's outlet, brand, category and product.

    Args:
        posting (Posting): The posting to link to
        base_uri (str): Web base URL of the store's Fundgrube page

    Returns:
        str: The deep link with form-encoded, key-sorted query parameters

    Note:
        Parameters already present on base_uri are kept.
    """
    parts = urlsplit(base_uri)
    params = parse_qsl(parts.query, keep_blank_values=True)
    params += [
        ("outletIds", str(posting.outlet.id)),
        ("brands", posting.brand.name),
        ("categorieIds", posting.category_id),
        ("text", str(posting.product_id)),
    ]
    # stable sort keeps repeated keys in insertion order
    params.sort(key=lambda kv: kv[0])
    return urlunsplit(parts._replace(query=urlencode(params)))


def to_feed_item(posting: Posting, base_uri: str) -> FeedItem:
    price = parse_price(posting.price)
    return FeedItem(
        title=format_item_title(posting.product_name, price, posting.shipping_cost),
        link=build_web_url(posting, base_uri),
        id=posting.id,
        content=posting.text,
    )
