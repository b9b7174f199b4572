import html as html_lib
import re
from typing import Optional

import structlog
from bs4 import BeautifulSoup, Tag
from readability import Document

from archive_reader.config import DEFAULT_THRESHOLDS, ExtractionThresholds
from archive_reader.models.extraction import (
    MODE_DOM_FALLBACK,
    MODE_READABILITY,
    MODE_STRUCTURED_DATA,
    ExtractionResult,
)
from archive_reader.services import quality
from archive_reader.services.archive_utils import (
    ARCHIVE_ORIGIN,
    MODIFIER_DIRECT,
    MODIFIER_IMAGE,
    absolutize_url,
    build_archive_url,
    first_srcset_url,
    is_http_url,
    rewrite_srcset,
    strip_archive_prefix,
)
from archive_reader.services.captions import (
    FigureCaptionIndex,
    attach_captions,
    build_caption_index,
    prepend_hero_image,
)
from archive_reader.services.exceptions import ExtractionFailure
from archive_reader.services.metadata import (
    extract_byline,
    extract_excerpt,
    extract_hero_image_source,
    extract_published_date,
    extract_site_name,
    site_name_from_url,
)
from archive_reader.utils import dom
from archive_reader.utils.jsonld import BODY_KEYS, find_longest_string, iter_jsonld_blocks
from archive_reader.utils.text_cleaner import (
    clean_text,
    normalize_text,
    paragraphs_from_text,
    text_length,
)

logger = structlog.get_logger(__name__)

ARTICLE_SELECTORS: tuple[str, ...] = (
    "article",
    '[itemprop="articleBody"]',
    "main",
    '[role="main"]',
    '[class*="article-body"]',
    '[class*="article__body"]',
    '[class*="story-body"]',
    '[class*="post-content"]',
    '[class*="entry-content"]',
)

FALLBACK_SELECTORS: tuple[str, ...] = (
    '[itemprop="articleBody"]',
    "article",
    '[class*="article-body"]',
    '[class*="article__body"]',
    '[class*="articleBody"]',
    '[class*="story-body"]',
    '[class*="post-content"]',
    '[class*="entry-content"]',
    '[id*="article-body"]',
    '[data-component*="article-body"]',
    "main article",
)

BOILERPLATE_SELECTORS: tuple[str, ...] = (
    "form",
    "aside",
    "nav",
    "footer",
    "button",
    '[class*="subscribe"]',
    '[id*="subscribe"]',
    '[class*="paywall"]',
    '[id*="paywall"]',
    '[class*="newsletter"]',
    '[class*="related"]',
    '[id*="related"]',
    '[class*="recirc"]',
    '[class*="promo"]',
)

NON_CONTENT_SELECTORS: tuple[str, ...] = ("script", "style", "noscript", "template")

LAZY_SRC_ATTRS = ("data-src", "data-original", "data-lazy-src", "data-orig-src")
LAZY_SRCSET_ATTRS = ("data-srcset", "data-original-srcset", "data-lazy-srcset")

_HTML_TAG = re.compile(r"<[a-zA-Z][^>]*>")


def _run_readability(document_html: str, base_url: str) -> tuple[str, str]:
    """Return ``(title, content_html)`` from readability or raise ExtractionFailure."""
    if not document_html:
        raise ExtractionFailure("No HTML provided for readability extraction.", url=base_url)
    try:
        document = Document(document_html, url=base_url)
        summary_html = document.summary(html_partial=True) or ""
        title = document.short_title() or ""
    except Exception as exc:  # readability raises a variety of lxml errors
        raise ExtractionFailure(
            f"Readability failed to parse HTML: {exc}", url=base_url
        ) from exc
    if not text_length(dom.parse_fragment(summary_html).get_text(" ")):
        raise ExtractionFailure("Readability did not yield extractable text.", url=base_url)
    return title, summary_html


def measure_article_length(root: Tag) -> int:
    lengths = [
        dom.node_text_length(node)
        for selector in ARTICLE_SELECTORS
        for node in dom.find_all(root, selector)
    ]
    return max(lengths, default=0)


def measure_body_length(root: Tag) -> int:
    body = root.body if isinstance(root, BeautifulSoup) and root.body else root
    clone = dom.clone_subtree(body)
    dom.remove_all(clone, NON_CONTENT_SELECTORS)
    return dom.node_text_length(clone)


def strip_inline_handlers(root: Tag) -> None:
    for node in root.find_all(True):
        for name in [attr for attr in node.attrs if attr.lower().startswith("on")]:
            dom.remove_attribute(node, name)


def _is_placeholder_src(value: str) -> bool:
    return not value or value.startswith("data:") or value == "about:blank"


def _unwrap_noscript(content: Tag) -> None:
    for noscript in dom.find_all(content, "noscript"):
        if noscript.decomposed:
            continue
        if noscript.find(["img", "picture"]) is not None:
            noscript.unwrap()
            continue
        raw = noscript.get_text()
        if "<img" in raw or "<picture" in raw:
            fragment = dom.parse_fragment(raw)
            for child in list(fragment.contents):
                noscript.insert_before(child.extract())
        noscript.decompose()


def _resolve_lazy_sources(content: Tag) -> None:
    for img in dom.find_all(content, "img"):
        if _is_placeholder_src(dom.get_attribute(img, "src")):
            for attr in LAZY_SRC_ATTRS:
                value = dom.get_attribute(img, attr)
                if value:
                    dom.set_attribute(img, "src", value)
                    break
    for node in dom.find_all(content, "img, source"):
        if dom.get_attribute(node, "srcset"):
            continue
        for attr in LAZY_SRCSET_ATTRS:
            value = dom.get_attribute(node, attr)
            if value:
                dom.set_attribute(node, "srcset", value)
                break
    for picture in dom.find_all(content, "picture"):
        img = dom.find_first(picture, "img")
        if img is None or not _is_placeholder_src(dom.get_attribute(img, "src")):
            continue
        source = dom.find_first(picture, "source[srcset], source[data-srcset]")
        if source is None:
            continue
        url = first_srcset_url(
            dom.get_attribute(source, "srcset") or dom.get_attribute(source, "data-srcset")
        )
        if url:
            dom.set_attribute(img, "src", url)


def _archive_attribute(
    node: Tag,
    attr: str,
    base_url: str,
    timestamp: Optional[str],
    modifier: Optional[str],
    origin: str,
) -> None:
    value = dom.get_attribute(node, attr)
    if not value or value.startswith(("#", "data:", "mailto:", "tel:")):
        return
    absolute = absolutize_url(value, base_url)
    if is_http_url(absolute):
        archived = build_archive_url(absolute, timestamp, modifier, origin=origin)
        dom.set_attribute(node, attr, archived)


def clean_content(
    content: Tag,
    base_url: str,
    timestamp: Optional[str],
    *,
    origin: str = ARCHIVE_ORIGIN,
) -> None:
    """Strip active content and point every resource at the archive, in place."""
    _unwrap_noscript(content)
    dom.remove_all(content, ("script", "style", "iframe"))
    strip_inline_handlers(content)
    _resolve_lazy_sources(content)

    for link in dom.find_all(content, "a[href]"):
        if dom.get_attribute(link, "href").lower().startswith("javascript:"):
            dom.remove_attribute(link, "href")
            continue
        _archive_attribute(link, "href", base_url, timestamp, None, origin)

    for node in dom.find_all(content, "img, source"):
        is_media_source = node.name == "source" and node.find_parent(["video", "audio"])
        modifier = MODIFIER_DIRECT if is_media_source else MODIFIER_IMAGE
        _archive_attribute(node, "src", base_url, timestamp, modifier, origin)
        srcset = dom.get_attribute(node, "srcset")
        if srcset:
            dom.set_attribute(
                node,
                "srcset",
                rewrite_srcset(srcset, base_url, timestamp, modifier, origin=origin),
            )

    for node in dom.find_all(content, "video[src], audio[src], track[src]"):
        _archive_attribute(node, "src", base_url, timestamp, MODIFIER_DIRECT, origin)

    for img in dom.find_all(content, "img"):
        if dom.get_attribute(img, "src"):
            continue
        url = first_srcset_url(dom.get_attribute(img, "srcset"))
        if url:
            dom.set_attribute(img, "src", url)


def html_text_length(content_html: str) -> int:
    return dom.node_text_length(dom.parse_fragment(content_html))


def structured_body_html(text: str) -> str:
    if _HTML_TAG.search(text):
        text = dom.parse_fragment(text).get_text("\n\n")
    paragraphs = paragraphs_from_text(clean_text(text))
    return "".join(f"<p>{html_lib.escape(paragraph)}</p>" for paragraph in paragraphs)


class ContentExtractor:
    """Turns one fetched capture into an ``ExtractionResult``.

    The parsed document is measured before anything mutates it, and
    readability always runs on a clone so the DOM fallbacks still see the
    untouched tree.
    """

    def __init__(
        self,
        thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
        *,
        origin: str = ARCHIVE_ORIGIN,
    ) -> None:
        self.thresholds = thresholds
        self.origin = origin

    def extract(
        self, html: str, base_url: str, timestamp: Optional[str]
    ) -> Optional[ExtractionResult]:
        if not html or not html.strip():
            return None

        soup = dom.parse_html(html)
        source_article_length = measure_article_length(soup)
        source_body_length = measure_body_length(soup)

        strip_inline_handlers(soup)
        caption_index = build_caption_index(soup, base_url, origin=self.origin)

        hero_source = (
            extract_hero_image_source(soup, base_url, origin=self.origin)
            or caption_index.first_figure_image_url
            or None
        )
        hero_image = (
            build_archive_url(hero_source, timestamp, MODIFIER_IMAGE, origin=self.origin)
            if hero_source
            else None
        )
        hero_caption = caption_index.lookup(hero_source, base_url) if hero_source else ""

        publication_name = extract_site_name(soup) or site_name_from_url(
            strip_archive_prefix(base_url, origin=self.origin)
        )
        published_date = extract_published_date(soup)

        try:
            title, readable_html = _run_readability(
                str(dom.clone_subtree(soup)), base_url
            )
        except ExtractionFailure as exc:
            # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
            logger.info(
                event="extractor_attempt",
                operation="extractor.readability",
                url=base_url,
                status="failure",
                error_type=ExtractionFailure.__name__,
                error=str(exc),
            )
            return None

        def finish(fragment_html: str) -> str:
            return self._finish_content(
                fragment_html, base_url, timestamp, caption_index, hero_image, hero_caption
            )

        content_html = finish(readable_html)
        mode = MODE_READABILITY
        extracted = html_text_length(content_html)

        if self._needs_dom_fallback(extracted, source_article_length):
            fallback_html = self._dom_fallback_html(soup)
            if fallback_html:
                fallback_content = finish(fallback_html)
                fallback_length = html_text_length(fallback_content)
                adopted = self._adopt_dom_fallback(fallback_length, extracted)
                logger.info(
                    event="extractor_fallback",
                    operation="extractor.dom_fallback",
                    url=base_url,
                    status="adopted" if adopted else "rejected",
                    chars=fallback_length,
                    baseline_chars=extracted,
                )
                if adopted:
                    content_html, extracted, mode = (
                        fallback_content,
                        fallback_length,
                        MODE_DOM_FALLBACK,
                    )

        structured_html = self._structured_fallback_html(soup)
        if structured_html:
            structured_length = html_text_length(structured_html)
            if self._adopt_structured(structured_length, extracted):
                logger.info(
                    event="extractor_fallback",
                    operation="extractor.structured_data",
                    url=base_url,
                    status="adopted",
                    chars=structured_length,
                    baseline_chars=extracted,
                )
                content_html = prepend_hero_image(
                    structured_html, hero_image, hero_caption, origin=self.origin
                )
                extracted = html_text_length(content_html)
                mode = MODE_STRUCTURED_DATA

        source_length = quality.resolve_source_length(
            source_article_length, source_body_length, self.thresholds
        )
        extraction_quality = quality.assess(extracted, source_length, self.thresholds)

        title = normalize_text(title) or self._fallback_title(soup)
        logger.info(
            event="extractor_result",
            operation="extractor.extract",
            url=base_url,
            mode=mode,
            chars=extracted,
            source_chars=source_length,
            coverage=round(extraction_quality.coverage, 3),
            warning=extraction_quality.has_warning,
        )
        return ExtractionResult(
            title=title,
            byline=extract_byline(soup),
            excerpt=extract_excerpt(
                soup, content_html, self.thresholds.excerpt_max_length
            ),
            content_html=content_html,
            hero_image=hero_image,
            publication_name=publication_name,
            published_date=published_date,
            extraction_mode=mode,
            quality=extraction_quality,
        )

    def _finish_content(
        self,
        fragment_html: str,
        base_url: str,
        timestamp: Optional[str],
        caption_index: FigureCaptionIndex,
        hero_image: Optional[str],
        hero_caption: str,
    ) -> str:
        content = dom.parse_fragment(fragment_html)
        clean_content(content, base_url, timestamp, origin=self.origin)
        attach_captions(content, base_url, caption_index)
        return prepend_hero_image(
            dom.inner_html(content), hero_image, hero_caption, origin=self.origin
        )

    def _needs_dom_fallback(self, extracted: int, source_article_length: int) -> bool:
        t = self.thresholds
        if extracted < t.fallback_trigger_length:
            return True
        return (
            source_article_length > 0
            and extracted < source_article_length * t.fallback_trigger_coverage
        )

    def _adopt_dom_fallback(self, fallback_length: int, extracted: int) -> bool:
        t = self.thresholds
        return (
            fallback_length >= t.fallback_min_length
            and fallback_length >= extracted * t.fallback_min_ratio
            and fallback_length - extracted >= t.fallback_min_gain
        )

    def _adopt_structured(self, structured_length: int, extracted: int) -> bool:
        t = self.thresholds
        return (
            structured_length >= t.structured_min_length
            and structured_length >= extracted * t.structured_min_ratio
            and structured_length - extracted >= t.structured_min_gain
        )

    def _dom_fallback_html(self, soup: BeautifulSoup) -> str:
        candidates = [
            node for selector in FALLBACK_SELECTORS for node in dom.find_all(soup, selector)
        ]
        if not candidates:
            candidates = dom.find_all(soup, "main")
        if not candidates:
            return ""
        best = max(candidates, key=dom.node_text_length)
        clone = dom.clone_subtree(best)
        dom.remove_all(clone, BOILERPLATE_SELECTORS)
        return dom.inner_html(clone)

    def _structured_fallback_html(self, soup: BeautifulSoup) -> str:
        best = ""
        for block in iter_jsonld_blocks(soup):
            candidate = find_longest_string(
                block, BODY_KEYS, max_depth=self.thresholds.structured_max_depth
            )
            if len(candidate) > len(best):
                best = candidate
        if text_length(best) < self.thresholds.structured_min_length:
            return ""
        return structured_body_html(best)

    @staticmethod
    def _fallback_title(soup: BeautifulSoup) -> str:
        for selector, attr in (('meta[property="og:title"]', "content"), ("title", None), ("h1", None)):
            node = dom.find_first(soup, selector)
            if node is None:
                continue
            value = normalize_text(dom.get_attribute(node, attr) if attr else dom.node_text(node))
            if value:
                return value
        return "Untitled"
