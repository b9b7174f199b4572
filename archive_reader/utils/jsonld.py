"""Depth-bounded searches over JSON-LD blocks."""

import json
from typing import Any, Callable, Iterator, Optional

from bs4 import Tag

DEFAULT_MAX_DEPTH = 12

DATE_KEYS = (
    "datePublished",
    "dateCreated",
    "dateModified",
    "date",
    "pubDate",
    "published",
)
BODY_KEYS = ("articleBody", "text", "body")


def iter_jsonld_blocks(root: Tag) -> Iterator[Any]:
    """Yield each parseable ``application/ld+json`` payload; invalid ones are skipped."""
    for script in root.select('script[type="application/ld+json"]'):
        raw = script.string if script.string is not None else script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            continue


def find_first_value(
    value: Any,
    keys: tuple[str, ...],
    accept: Callable[[Any], Optional[str]],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    _depth: int = 0,
) -> Optional[str]:
    """First accepted value under ``keys``, checking each object before its children."""
    if _depth > max_depth or value is None:
        return None
    if isinstance(value, list):
        for item in value:
            found = find_first_value(
                item, keys, accept, max_depth=max_depth, _depth=_depth + 1
            )
            if found:
                return found
        return None
    if not isinstance(value, dict):
        return None
    for key in keys:
        if value.get(key):
            candidate = accept(value[key])
            if candidate:
                return candidate
    if "@graph" in value:
        found = find_first_value(
            value["@graph"], keys, accept, max_depth=max_depth, _depth=_depth + 1
        )
        if found:
            return found
    for nested in value.values():
        found = find_first_value(
            nested, keys, accept, max_depth=max_depth, _depth=_depth + 1
        )
        if found:
            return found
    return None


def find_longest_string(
    value: Any,
    keys: tuple[str, ...] = BODY_KEYS,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    _depth: int = 0,
) -> str:
    """Longest string stored under any of ``keys`` anywhere in ``value``."""
    if _depth > max_depth or value is None:
        return ""
    best = ""
    if isinstance(value, list):
        children = value
    elif isinstance(value, dict):
        for key in keys:
            candidate = value.get(key)
            if isinstance(candidate, str) and len(candidate.strip()) > len(best):
                best = candidate.strip()
        children = list(value.values())
    else:
        return ""
    for child in children:
        if isinstance(child, (dict, list)):
            nested = find_longest_string(
                child, keys, max_depth=max_depth, _depth=_depth + 1
            )
            if len(nested) > len(best):
                best = nested
    return best
