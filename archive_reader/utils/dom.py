"""Thin tree-editing layer over BeautifulSoup used by the extractor."""

import copy
from typing import Iterable, Optional

from bs4 import BeautifulSoup, Tag

from archive_reader.utils.text_cleaner import normalize_text


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def parse_fragment(html: str) -> Tag:
    """Parse a content fragment and return the ``<body>`` that wraps it."""
    soup = parse_html(f"<html><body>{html or ''}</body></html>")
    body = soup.body
    if body is None:  # pragma: no cover - lxml always builds a body
        body = soup.new_tag("body")
        soup.append(body)
    return body


def find_all(root: Tag, selector: str) -> list[Tag]:
    return list(root.select(selector))


def find_first(root: Tag, selector: str) -> Optional[Tag]:
    return root.select_one(selector)


def get_attribute(node: Tag, name: str) -> str:
    value = node.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return (value or "").strip()


def set_attribute(node: Tag, name: str, value: str) -> None:
    node[name] = value


def remove_attribute(node: Tag, name: str) -> None:
    if name in node.attrs:
        del node.attrs[name]


def remove_all(root: Tag, selectors: Iterable[str]) -> None:
    for selector in selectors:
        for node in root.select(selector):
            # Parents removed earlier in the loop take their children with them.
            if not node.decomposed:
                node.decompose()


def clone_subtree(node: Tag) -> Tag:
    """Deep copy; edits to the clone never reach the source tree."""
    return copy.copy(node)


def node_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return normalize_text(node.get_text(" "))


def node_text_length(node: Optional[Tag]) -> int:
    return len(node_text(node))


def inner_html(node: Tag) -> str:
    return node.decode_contents()


def closest(node: Tag, name: str) -> Optional[Tag]:
    return node.find_parent(name)
