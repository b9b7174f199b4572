"""Helpers to normalise text pulled out of archived pages."""

import html
import re
import unicodedata
from typing import Iterable, Optional

# Common boilerplate lines found in structured-data article bodies.
_BOILERPLATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^advertisement$",
        r"^sponsored content$",
        r"^sign up for our newsletter.*",
        r"^subscribe to .*",
        r"^related (stories|articles).*",
        r"^read (more|next):.*",
        r"^share this (story|article).*",
    )
)

_CONTROL_CHARS = {
    "\u200b",  # zero-width space
    "\u200c",  # zero-width non-joiner
    "\u200d",  # zero-width joiner
    "\ufeff",  # zero-width no-break space / BOM
}

_WHITESPACE = re.compile(r"\s+")
_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_BLOCK = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]*>")

DETAIL_MAX_LENGTH = 600


def normalize_text(value: Optional[str]) -> str:
    """Collapse all whitespace runs to single spaces."""
    return _WHITESPACE.sub(" ", str(value or "")).strip()


def text_length(value: Optional[str]) -> int:
    return len(normalize_text(value))


def truncate(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return f"{value[: max_length - 3]}..."


def strip_markup(raw: Optional[str], max_length: int = DETAIL_MAX_LENGTH) -> str:
    """Plain-text rendering of an upstream HTML body, capped for display."""
    if not raw:
        return ""
    text = _SCRIPT_BLOCK.sub(" ", raw)
    text = _STYLE_BLOCK.sub(" ", text)
    text = _TAG.sub(" ", text)
    return truncate(normalize_text(text), max_length)


def _strip_control_chars(text: str) -> str:
    for char in _CONTROL_CHARS:
        text = text.replace(char, "")
    return text


def _remove_boilerplate(lines: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped:
            cleaned.append("")
            continue
        if any(pattern.match(stripped) for pattern in _BOILERPLATE_PATTERNS):
            continue
        cleaned.append(stripped)
    return cleaned


def clean_text(raw_text: Optional[str]) -> str:
    """Normalise article text while keeping its line structure."""
    if not raw_text:
        return ""

    text = html.unescape(raw_text)
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\u00a0", " ")
    text = _strip_control_chars(text)
    text = re.sub(r"[\t\f]+", " ", text)
    text = re.sub(r" {2,}", " ", text)

    lines = _remove_boilerplate(text.split("\n"))

    # Collapse runs of blank lines down to one.
    normalised_lines: list[str] = []
    for line in lines:
        if not line and normalised_lines and normalised_lines[-1] == "":
            continue
        normalised_lines.append(line)

    return "\n".join(normalised_lines).strip()


def paragraphs_from_text(text: str) -> list[str]:
    """Split on blank lines, or on single newlines when there are none."""
    if "\n\n" in text:
        blocks = text.split("\n\n")
    else:
        blocks = text.split("\n")
    return [normalize_text(block) for block in blocks if normalize_text(block)]
