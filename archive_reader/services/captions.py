"""Figure captions: indexed from the original DOM, re-attached to cleaned content."""

import html
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

from bs4 import Tag

from archive_reader.services.archive_utils import (
    ARCHIVE_ORIGIN,
    absolutize_url,
    is_http_url,
    strip_archive_prefix,
)
from archive_reader.utils import dom
from archive_reader.utils.text_cleaner import normalize_text

IMAGE_NODE_SELECTOR = "img, source, meta[itemprop='url']"
CAPTION_SELECTOR = "figcaption, [itemprop='caption'], [class*='caption']"

_DIRECT_ATTRS = ("src", "data-src", "data-original", "data-lazy-src", "data-orig-src", "content")
_SRCSET_ATTRS = ("srcset", "data-srcset", "data-original-srcset", "data-lazy-srcset")


@dataclass
class FigureCaptionIndex:
    by_normalized: dict[str, str] = field(default_factory=dict)
    by_basename: dict[str, str] = field(default_factory=dict)
    first_figure_image_url: str = ""
    origin: str = ARCHIVE_ORIGIN

    def lookup(self, value: str, base_url: Optional[str]) -> str:
        if not value:
            return ""
        absolute = absolutize_url(value, base_url)
        normalized = normalize_url_for_compare(absolute, origin=self.origin)
        if normalized and normalized in self.by_normalized:
            return self.by_normalized[normalized]
        basename = url_basename(absolute, origin=self.origin)
        if basename and basename in self.by_basename:
            return self.by_basename[basename]
        return ""


def normalize_url_for_compare(value: str, *, origin: str = ARCHIVE_ORIGIN) -> str:
    stripped = strip_archive_prefix(value, origin=origin)
    try:
        parsed = urlsplit(stripped)
    except ValueError:
        return stripped.lower()
    if not parsed.scheme or not parsed.netloc:
        return stripped.lower()
    path = parsed.path or ""
    if path != "/":
        path = path.rstrip("/")
    return f"{parsed.scheme}://{parsed.netloc}{path}".lower()


def url_basename(value: str, *, origin: str = ARCHIVE_ORIGIN) -> str:
    try:
        path = urlsplit(strip_archive_prefix(value, origin=origin)).path
    except ValueError:
        return ""
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1].lower() if segments else ""


def image_candidates(node: Tag) -> list[str]:
    values = [dom.get_attribute(node, attr) for attr in _DIRECT_ATTRS]
    candidates = [value for value in values if value]
    for attr in _SRCSET_ATTRS:
        srcset = dom.get_attribute(node, attr)
        if not srcset:
            continue
        for part in srcset.split(","):
            pieces = part.strip().split()
            if pieces:
                candidates.append(pieces[0])
    return candidates


def figure_caption(figure: Tag) -> str:
    return dom.node_text(dom.find_first(figure, CAPTION_SELECTOR))


def build_caption_index(
    root: Tag, base_url: str, *, origin: str = ARCHIVE_ORIGIN
) -> FigureCaptionIndex:
    index = FigureCaptionIndex(origin=origin)
    basename_captions: dict[str, set[str]] = {}

    for figure in dom.find_all(root, "figure"):
        caption = figure_caption(figure)
        for image_node in dom.find_all(figure, IMAGE_NODE_SELECTOR):
            for candidate in image_candidates(image_node):
                absolute = absolutize_url(candidate, base_url)
                if not is_http_url(strip_archive_prefix(absolute, origin=origin)):
                    continue
                if not index.first_figure_image_url:
                    index.first_figure_image_url = absolute
                if not caption:
                    continue
                normalized = normalize_url_for_compare(absolute, origin=origin)
                if normalized:
                    index.by_normalized.setdefault(normalized, caption)
                basename = url_basename(absolute, origin=origin)
                if basename:
                    basename_captions.setdefault(basename, set()).add(caption)

    # A basename shared by differently-captioned images is ambiguous.
    for basename, captions in basename_captions.items():
        if len(captions) == 1:
            index.by_basename[basename] = next(iter(captions))
    return index


def _caption_for_figure(figure: Tag, base_url: str, index: FigureCaptionIndex) -> str:
    for image_node in dom.find_all(figure, IMAGE_NODE_SELECTOR):
        for candidate in image_candidates(image_node):
            caption = index.lookup(candidate, base_url)
            if caption:
                return caption
    return ""


def attach_captions(content: Tag, base_url: str, index: FigureCaptionIndex) -> None:
    """Give captionless figures and bare images their original captions, in place."""
    soup = content
    while soup.parent is not None:
        soup = soup.parent

    for figure in dom.find_all(content, "figure"):
        if figure_caption(figure):
            continue
        caption = _caption_for_figure(figure, base_url, index)
        if not caption:
            continue
        figcaption = soup.new_tag("figcaption")
        figcaption.string = caption
        figure.append(figcaption)

    for img in dom.find_all(content, "img"):
        if dom.closest(img, "figure") is not None:
            continue
        for candidate in image_candidates(img):
            caption = index.lookup(candidate, base_url)
            if not caption:
                continue
            following = img.find_next_sibling()
            if following is not None and dom.node_text(following) == caption:
                break
            paragraph = soup.new_tag("p", attrs={"class": "image-caption"})
            paragraph.string = caption
            img.insert_after(paragraph)
            break


def prepend_hero_image(
    content_html: str,
    hero_url: Optional[str],
    hero_caption: str = "",
    *,
    origin: str = ARCHIVE_ORIGIN,
) -> str:
    if not hero_url:
        return content_html
    stripped = strip_archive_prefix(hero_url, origin=origin)
    needles = {hero_url, stripped, html.escape(hero_url, quote=False)}
    needles.add(html.escape(stripped, quote=False))
    if any(needle and needle in content_html for needle in needles):
        return content_html
    caption_markup = (
        f"<figcaption>{html.escape(hero_caption)}</figcaption>" if hero_caption else ""
    )
    return (
        f'<figure class="reader-hero"><img src="{html.escape(hero_url)}" alt="" />'
        f"{caption_markup}</figure>{content_html}"
    )
