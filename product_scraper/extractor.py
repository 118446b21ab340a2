"""Field extraction from search-result tiles and product pages.

Every field has an ordered list of strategies. A strategy is a callable
taking an ExtractionContext and returning a value or None; it never raises
because its target markup is missing, so the next strategy gets a turn.
Strategies go from the most specific markup variant to the most generic.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup, Tag

from .errors import ExtractionSkip
from .models import Price, ProductRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "https://www.amazon.com"

ITEM_ID_PATTERN = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})(?:[/?#]|$)")
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")
DIGITS_PATTERN = re.compile(r"\d[\d,]*")
AMOUNT_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")

PLACEHOLDER_IMAGE_MARKERS = (
    "grey-pixel",
    "transparent-pixel",
    "loading-",
    "sprite",
    "/x-locale/common/",
)

TILE_SELECTORS = (
    '[data-component-type="s-search-result"]',
    ".s-result-item[data-asin]",
    'div[data-asin]:not([data-asin=""])',
)

AVAILABILITY_DEFAULT_TILE = "In Stock"
AVAILABILITY_UNKNOWN = "Unknown"


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(text.split())
    return text or None


class ExtractionContext:
    """Read-only view over one content block.

    Wraps a parsed element together with the URL of the page it came from.
    Only query helpers are exposed."""

    __slots__ = ("_tag", "_page_url")

    def __init__(self, tag: Tag, page_url: str = "") -> None:
        self._tag = tag
        self._page_url = page_url

    @classmethod
    def from_html(cls, html: str, page_url: str = "") -> "ExtractionContext":
        return cls(BeautifulSoup(html, "html.parser"), page_url)

    @property
    def page_url(self) -> str:
        return self._page_url

    def own_attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        return _clean(value)

    def text(self, selector: str, separator: str = " ") -> Optional[str]:
        el = self._tag.select_one(selector)
        if el is None:
            return None
        return _clean(el.get_text(separator, strip=True))

    def texts(self, selector: str) -> List[str]:
        out = []
        for el in self._tag.select(selector):
            value = _clean(el.get_text(" ", strip=True))
            if value:
                out.append(value)
        return out

    def attr(self, selector: str, name: str) -> Optional[str]:
        el = self._tag.select_one(selector)
        if el is None:
            return None
        value = el.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        return _clean(value)

    def attrs(self, selector: str, name: str) -> List[str]:
        out = []
        for el in self._tag.select(selector):
            value = _clean(el.get(name))
            if value:
                out.append(value)
        return out

    def last_text_near(self, selector: str, levels: int = 2, descendant: str = "span") -> Optional[str]:
        """Text of the last `descendant` under the ancestor `levels` above `selector`."""
        el = self._tag.select_one(selector)
        if el is None:
            return None
        for _ in range(levels):
            if el.parent is None:
                return None
            el = el.parent
        found = el.find_all(descendant)
        if not found:
            return None
        return _clean(found[-1].get_text(" ", strip=True))

    def children(self, selectors: Sequence[str]) -> List["ExtractionContext"]:
        """Sub-contexts for the first selector that matches anything."""
        for selector in selectors:
            matched = self._tag.select(selector)
            if matched:
                logger.debug("Found %d blocks with %s", len(matched), selector)
                return [ExtractionContext(tag, self._page_url) for tag in matched]
        return []


Strategy = Callable[[ExtractionContext], Optional[T]]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def first_success(strategies: Sequence[Strategy], context: ExtractionContext, default: Any = None) -> Any:
    """Return the first non-empty strategy result, else default."""
    for strategy in strategies:
        value = strategy(context)
        if not _is_empty(value):
            return value
    return default


def text_of(selector: str, separator: str = " ") -> Strategy[str]:
    return lambda ctx: ctx.text(selector, separator)


def attr_of(selector: str, name: str) -> Strategy[str]:
    return lambda ctx: ctx.attr(selector, name)


def own_attr(name: str) -> Strategy[str]:
    return lambda ctx: ctx.own_attr(name)


def attrs_of(selector: str, name: str) -> Strategy[List[str]]:
    return lambda ctx: ctx.attrs(selector, name)


def parse_item_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = ITEM_ID_PATTERN.search(url)
    return match.group(1) if match else None


def parse_amount(display: str) -> Optional[float]:
    match = AMOUNT_PATTERN.search(display or "")
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def parse_rating(text: Optional[str]) -> Optional[float]:
    match = NUMBER_PATTERN.search(text or "")
    if not match:
        return None
    value = float(match.group(0))
    if not 0 <= value <= 5:
        return None
    return value


def parse_count(text: Optional[str]) -> Optional[int]:
    match = DIGITS_PATTERN.search(text or "")
    if not match:
        return None
    return int(match.group(0).replace(",", ""))


def referral_link(item_id: str, affiliate_tag: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Affiliate link for an item, or "" when either input is empty."""
    if not item_id or not affiliate_tag:
        return ""
    return f"{base_url.rstrip('/')}/dp/{item_id}?{urlencode({'tag': affiliate_tag})}"


def _item_id_from_links(*selectors: str) -> Strategy[str]:
    def strategy(ctx: ExtractionContext) -> Optional[str]:
        for selector in selectors:
            for href in ctx.attrs(selector, "href"):
                item_id = parse_item_id(href)
                if item_id:
                    return item_id
        return None

    return strategy


def _item_id_from_page_url(ctx: ExtractionContext) -> Optional[str]:
    return parse_item_id(ctx.page_url)


def _composed_price(ctx: ExtractionContext) -> Optional[str]:
    # Parts are concatenated as-is; no decimal point is inserted between
    # whole and fraction. Amazon's whole part usually carries its own ".".
    whole = ctx.text(".a-price-whole", separator="")
    if not whole:
        return None
    fraction = ctx.text(".a-price-fraction", separator="")
    symbol = ctx.text(".a-price-symbol", separator="") or "$"
    return "".join(part for part in (symbol, whole, fraction) if part)


def _mapped(strategy: Strategy[str], parse: Callable[[Optional[str]], Optional[T]]) -> Strategy[T]:
    return lambda ctx: parse(strategy(ctx))


def _review_label_near_stars(ctx: ExtractionContext) -> Optional[str]:
    label = ctx.last_text_near('span[aria-label*="stars"]', levels=2)
    # Without a count label the last span is the star text itself.
    if label and "out of" in label:
        return None
    return label


def _joined_texts(selector: str, separator: str = "\n") -> Strategy[str]:
    def strategy(ctx: ExtractionContext) -> Optional[str]:
        values = ctx.texts(selector)
        return separator.join(values) if values else None

    return strategy


TILE_FIELDS: Dict[str, Tuple[Sequence[Strategy[Any]], Any]] = {
    "item_id": (
        [
            own_attr("data-asin"),
            _item_id_from_links("h2 a", "a.a-link-normal"),
        ],
        None,
    ),
    "name": (
        [
            text_of("h2 a span"),
            text_of("h2 .a-text-normal"),
            text_of("h2"),
            text_of(".a-size-medium.a-text-normal"),
        ],
        None,
    ),
    "link": (
        [
            attr_of("h2 a", "href"),
            attr_of("a.a-link-normal", "href"),
        ],
        None,
    ),
    "price": (
        [
            text_of(".a-price .a-offscreen", separator=""),
            _composed_price,
        ],
        "N/A",
    ),
    "rating": (
        [
            _mapped(text_of(".a-icon-star-small span"), parse_rating),
            _mapped(text_of(".a-icon-star span"), parse_rating),
            _mapped(attr_of('[aria-label*="out of 5"]', "aria-label"), parse_rating),
        ],
        None,
    ),
    "review_count": (
        [
            _mapped(_review_label_near_stars, parse_count),
            _mapped(text_of('a[href*="#customerReviews"] span'), parse_count),
        ],
        0,
    ),
    "images": (
        [
            attrs_of("img.s-image", "src"),
            attrs_of("img", "src"),
        ],
        [],
    ),
    "landing_image": ([], None),
    "availability": ([], AVAILABILITY_DEFAULT_TILE),
    "description": ([], None),
}

# A product page holds other products' links, titles and prices in its
# carousels, so page-level anchors come first here.
DETAIL_FIELDS: Dict[str, Tuple[Sequence[Strategy[Any]], Any]] = {
    "item_id": (
        [
            attr_of("input#ASIN", "value"),
            _item_id_from_page_url,
            _mapped(attr_of('link[rel="canonical"]', "href"), parse_item_id),
        ],
        None,
    ),
    "name": (
        [
            text_of("#productTitle"),
            text_of("#title"),
            attr_of('meta[name="title"]', "content"),
        ],
        None,
    ),
    "link": ([attr_of('link[rel="canonical"]', "href")], None),
    "price": (
        [
            text_of("#corePrice_feature_div .a-offscreen", separator=""),
            text_of("#priceblock_ourprice", separator=""),
            text_of("#priceblock_dealprice", separator=""),
            text_of("#apex_desktop .a-offscreen", separator=""),
        ],
        "N/A",
    ),
    "rating": (
        [
            _mapped(attr_of("#acrPopover", "title"), parse_rating),
            _mapped(text_of("#acrPopover .a-icon-alt"), parse_rating),
        ],
        None,
    ),
    "review_count": ([_mapped(text_of("#acrCustomerReviewText"), parse_count)], 0),
    "images": (
        [
            attrs_of("#altImages img", "src"),
            attrs_of("#imgTagWrapperId img", "src"),
        ],
        [],
    ),
    "landing_image": (
        [
            attr_of("#landingImage", "data-old-hires"),
            attr_of("#landingImage", "src"),
        ],
        None,
    ),
    "availability": (
        [
            text_of("#availability span"),
            text_of("#availability"),
        ],
        AVAILABILITY_UNKNOWN,
    ),
    "description": (
        [
            _joined_texts("#feature-bullets li"),
            text_of("#productDescription"),
            attr_of('meta[name="description"]', "content"),
        ],
        None,
    ),
}

BLOCK_FIELDS = {"tile": TILE_FIELDS, "detail": DETAIL_FIELDS}


def _is_real_image(url: str) -> bool:
    if not url.startswith(("http://", "https://")):
        return False
    lowered = url.lower()
    return not any(marker in lowered for marker in PLACEHOLDER_IMAGE_MARKERS)


class FieldExtractor:
    """Turns content blocks into ProductRecords.

    Holds configuration only; extraction results depend solely on the
    context and the timestamp passed in."""

    def __init__(self, affiliate_tag: str = "", base_url: str = DEFAULT_BASE_URL, max_images: int = 5) -> None:
        self._affiliate_tag = affiliate_tag
        self._base_url = base_url.rstrip("/")
        self._max_images = max(1, max_images)

    @property
    def affiliate_tag(self) -> str:
        return self._affiliate_tag

    def extract_field(self, context: ExtractionContext, field: str, block: str = "tile") -> Any:
        """First non-empty value for `field` among the strategies for `block`."""
        try:
            strategies, default = BLOCK_FIELDS[block][field]
        except KeyError:
            raise ValueError(f"Unknown field {field!r} for block {block!r}") from None
        return first_success(strategies, context, default)

    def _resolve_image(self, url: str) -> str:
        # Protocol-relative sources take the storefront's scheme.
        if url.startswith("//"):
            return urljoin(self._base_url + "/", url)
        return url

    def extract_images(self, context: ExtractionContext, block: str = "tile") -> Tuple[str, ...]:
        strategies, _ = BLOCK_FIELDS[block]["images"]
        images: List[str] = []
        for strategy in strategies:
            resolved = (self._resolve_image(url) for url in strategy(context) or [])
            candidates = [url for url in resolved if _is_real_image(url)]
            if candidates:
                images = list(dict.fromkeys(candidates))
                break

        landing = self.extract_field(context, "landing_image", block)
        landing = self._resolve_image(landing) if landing else landing
        if landing and _is_real_image(landing) and landing not in images:
            images.insert(0, landing)
        return tuple(images[: self._max_images])

    def extract_tile(self, context: ExtractionContext, scraped_at: str) -> ProductRecord:
        """Build a record from one search-result tile.

        Raises ExtractionSkip when the identifier or the name is missing."""
        return self._build(context, scraped_at, "tile")

    def extract_detail(self, context: ExtractionContext, scraped_at: str) -> ProductRecord:
        """Build a record from a whole product page."""
        return self._build(context, scraped_at, "detail")

    def extract_search_results(
        self,
        html: str,
        scraped_at: str,
        page_url: str = "",
        limit: int = 0,
    ) -> List[ProductRecord]:
        page = ExtractionContext.from_html(html, page_url)
        records: List[ProductRecord] = []
        seen = set()
        for tile in page.children(TILE_SELECTORS):
            try:
                record = self.extract_tile(tile, scraped_at)
            except ExtractionSkip as exc:
                logger.debug("Skipping tile: %s", exc)
                continue
            if record.item_id in seen:
                logger.debug("Skipping duplicate tile %s", record.item_id)
                continue
            seen.add(record.item_id)
            records.append(record)
            if limit > 0 and len(records) >= limit:
                logger.info("Reached product limit of %d", limit)
                break
        return records

    def _build(self, context: ExtractionContext, scraped_at: str, block: str) -> ProductRecord:
        item_id = self.extract_field(context, "item_id", block)
        if not item_id:
            raise ExtractionSkip("no item identifier")
        name = self.extract_field(context, "name", block)
        if not name:
            raise ExtractionSkip(f"{item_id}: no product name")

        link = self.extract_field(context, "link", block)
        if link:
            canonical_link = urljoin(self._base_url + "/", link)
        else:
            canonical_link = f"{self._base_url}/dp/{item_id}"

        display = self.extract_field(context, "price", block)
        return ProductRecord(
            name=name,
            item_id=item_id,
            canonical_link=canonical_link,
            scraped_at=scraped_at,
            price=Price(display=display, amount=parse_amount(display)),
            image_urls=self.extract_images(context, block),
            rating=self.extract_field(context, "rating", block),
            review_count=self.extract_field(context, "review_count", block),
            referral_link=referral_link(item_id, self._affiliate_tag, self._base_url),
            availability=self.extract_field(context, "availability", block),
            description=self.extract_field(context, "description", block),
        )


def merge_details(record: ProductRecord, detail: ProductRecord) -> ProductRecord:
    """Overlay product-page fields onto a search-result record."""
    availability = record.availability
    if detail.availability != AVAILABILITY_UNKNOWN:
        availability = detail.availability
    return replace(
        record,
        description=detail.description or record.description,
        image_urls=detail.image_urls or record.image_urls,
        availability=availability,
        rating=record.rating if record.rating is not None else detail.rating,
        price=record.price if record.price.amount is not None else detail.price,
    )
