"""Page-level metadata read from the original capture DOM."""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlsplit

from bs4 import Tag
from dateutil import parser as date_parser

from archive_reader.services.archive_utils import (
    ARCHIVE_ORIGIN,
    absolutize_url,
    is_http_url,
    strip_archive_prefix,
)
from archive_reader.utils import dom
from archive_reader.utils.jsonld import DATE_KEYS, find_first_value, iter_jsonld_blocks
from archive_reader.utils.text_cleaner import normalize_text, truncate

HERO_IMAGE_SELECTORS: tuple[tuple[str, str], ...] = (
    ('meta[property="og:image"]', "content"),
    ('meta[property="og:image:url"]', "content"),
    ('meta[property="og:image:secure_url"]', "content"),
    ('meta[name="twitter:image"]', "content"),
    ('meta[name="twitter:image:src"]', "content"),
    ('meta[name="thumbnail"]', "content"),
    ('link[rel="image_src"]', "href"),
)

SITE_NAME_SELECTORS: tuple[str, ...] = (
    'meta[property="og:site_name"]',
    'meta[name="application-name"]',
    'meta[name="apple-mobile-web-app-title"]',
    'meta[name="twitter:site"]',
)

PUBLISHED_META_SELECTORS: tuple[str, ...] = (
    'meta[property="article:published_time"]',
    'meta[property="og:published_time"]',
    'meta[name="article:published_time"]',
    'meta[name="pubdate"]',
    'meta[name="publish-date"]',
    'meta[name="publish_date"]',
    'meta[name="date"]',
    'meta[name="dc.date"]',
    'meta[name="dc.date.issued"]',
    'meta[name="dc.date.published"]',
    'meta[name="datePublished"]',
    'meta[name="parsely-pub-date"]',
    'meta[name="sailthru.date"]',
    'meta[property="article:published"]',
)

BYLINE_META_SELECTORS: tuple[str, ...] = (
    'meta[name="author"]',
    'meta[property="article:author"]',
    'meta[name="parsely-author"]',
    'meta[name="sailthru.author"]',
)
BYLINE_NODE_SELECTORS: tuple[str, ...] = (
    '[rel="author"]',
    '[itemprop="author"] [itemprop="name"]',
    '[itemprop="author"]',
    ".byline",
    '[class*="byline"]',
)

EXCERPT_META_SELECTORS: tuple[str, ...] = (
    'meta[name="description"]',
    'meta[property="og:description"]',
    'meta[name="twitter:description"]',
)

_HOST_SPLIT = re.compile(r"[-_]+")
_DIGITS_ONLY = re.compile(r"^\d+$")
# Fields the text leaves out come from this; year 1 marks a date with no year.
_UNSET_DATE = datetime(1, 1, 1)


def extract_hero_image_source(
    root: Tag, base_url: str, *, origin: str = ARCHIVE_ORIGIN
) -> Optional[str]:
    for selector, attr in HERO_IMAGE_SELECTORS:
        node = dom.find_first(root, selector)
        if node is None:
            continue
        value = dom.get_attribute(node, attr)
        if not value:
            continue
        absolute = absolutize_url(value, base_url)
        if is_http_url(strip_archive_prefix(absolute, origin=origin)):
            return absolute
    return None


def extract_site_name(root: Tag) -> str:
    for selector in SITE_NAME_SELECTORS:
        node = dom.find_first(root, selector)
        if node is None:
            continue
        value = normalize_text(dom.get_attribute(node, "content"))
        cleaned = value[1:] if value.startswith("@") else value
        if cleaned:
            return cleaned
    return ""


def site_name_from_url(url: str) -> str:
    """Readable publication name derived from the hostname."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return ""
    parts = host.split(".")
    base = parts[-2] if len(parts) >= 2 else host
    words = []
    for word in _HOST_SPLIT.split(base):
        if not word:
            continue
        words.append(word.upper() if len(word) <= 4 else word[0].upper() + word[1:])
    return " ".join(words) or host


def to_date_only(value: Any) -> Optional[str]:
    """Normalise a date-ish value to ``YYYY-MM-DD`` in UTC, or None."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = normalize_text(str(value))
    if not text or _DIGITS_ONLY.match(text) and len(text) < 8:
        return None
    try:
        parsed = date_parser.parse(text, default=_UNSET_DATE)
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.year == _UNSET_DATE.year:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    if not (1990 <= parsed.year <= datetime.now(timezone.utc).year + 1):
        return None
    return parsed.strftime("%Y-%m-%d")


def extract_published_date(root: Tag) -> Optional[str]:
    for selector in PUBLISHED_META_SELECTORS:
        node = dom.find_first(root, selector)
        if node is None:
            continue
        candidate = to_date_only(dom.get_attribute(node, "content"))
        if candidate:
            return candidate

    time_node = (
        dom.find_first(root, "time[datetime]")
        or dom.find_first(root, 'time[itemprop="datePublished"]')
        or dom.find_first(root, "time[pubdate]")
    )
    if time_node is not None:
        value = dom.get_attribute(time_node, "datetime") or dom.node_text(time_node)
        candidate = to_date_only(value)
        if candidate:
            return candidate

    item_prop = dom.find_first(root, '[itemprop="datePublished"]')
    if item_prop is not None:
        value = dom.get_attribute(item_prop, "content") or dom.node_text(item_prop)
        candidate = to_date_only(value)
        if candidate:
            return candidate

    for block in iter_jsonld_blocks(root):
        candidate = find_first_value(block, DATE_KEYS, to_date_only)
        if candidate:
            return candidate
    return None


def extract_byline(root: Tag) -> Optional[str]:
    for selector in BYLINE_META_SELECTORS:
        node = dom.find_first(root, selector)
        if node is None:
            continue
        value = normalize_text(dom.get_attribute(node, "content"))
        if value and not is_http_url(value):
            return truncate(value, 200)
    for selector in BYLINE_NODE_SELECTORS:
        node = dom.find_first(root, selector)
        value = dom.node_text(node)
        if value and len(value) <= 200:
            return value
    return None


def extract_excerpt(root: Tag, content_html: str, max_length: int = 280) -> Optional[str]:
    for selector in EXCERPT_META_SELECTORS:
        node = dom.find_first(root, selector)
        if node is None:
            continue
        value = normalize_text(dom.get_attribute(node, "content"))
        if value:
            return truncate(value, max_length)
    content = dom.parse_fragment(content_html)
    for paragraph in dom.find_all(content, "p"):
        value = dom.node_text(paragraph)
        if len(value) >= 40:
            return truncate(value, max_length)
    return None
