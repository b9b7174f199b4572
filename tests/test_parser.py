import json

import pytest

from archive_reader.models.extraction import (
    MODE_DOM_FALLBACK,
    MODE_READABILITY,
    MODE_STRUCTURED_DATA,
)
from archive_reader.services import captions, parser
from archive_reader.services.exceptions import ExtractionFailure
from archive_reader.utils import dom

BASE_URL = "https://example.com/story"
TIMESTAMP = "20240101000000"
SENTENCE = "The council met on Tuesday to debate the harbour budget again. "


def _paragraphs(count, chars_each=200):
    body = (SENTENCE * (chars_each // len(SENTENCE) + 1))[:chars_each].strip()
    return "".join(f"<p>{body}</p>" for _ in range(count))


def _page(article_html="", head="", body_extra=""):
    return (
        "<html><head><title>Harbour budget | Example Times</title>"
        f"{head}</head><body><header><h1>Harbour budget</h1></header>"
        f"{article_html}{body_extra}</body></html>"
    )


def _fake_readability(summary_html, title="Harbour budget"):
    def run(document_html, base_url):
        return title, summary_html

    return run


def test_near_complete_readability_result_is_kept(monkeypatch):
    html = _page(
        f"<article>{_paragraphs(31)}</article>",
        head=(
            '<meta property="og:image" content="/hero.jpg">'
            '<meta property="og:site_name" content="Example Times">'
        ),
    )
    monkeypatch.setattr(parser, "_run_readability", _fake_readability(_paragraphs(30)))

    result = parser.ContentExtractor().extract(html, BASE_URL, TIMESTAMP)

    assert result is not None
    assert result.extraction_mode == MODE_READABILITY
    assert not result.quality.has_warning
    assert result.quality.coverage > 0.9
    assert result.quality.source_text_length >= 6000
    assert result.title == "Harbour budget"
    assert result.publication_name == "Example Times"
    assert result.hero_image == (
        "https://web.archive.org/web/20240101000000im_/https://example.com/hero.jpg"
    )
    assert result.content_html.startswith('<figure class="reader-hero">')


def test_truncated_readability_result_falls_back_to_article_dom(monkeypatch):
    article = (
        f"<article>{_paragraphs(40)}"
        '<aside class="related"><a href="/other">Other story</a></aside></article>'
    )
    monkeypatch.setattr(
        parser, "_run_readability", _fake_readability(_paragraphs(5, 180))
    )

    result = parser.ContentExtractor().extract(_page(article), BASE_URL, TIMESTAMP)

    assert result is not None
    assert result.extraction_mode == MODE_DOM_FALLBACK
    assert result.quality.extracted_text_length >= 7900
    assert not result.quality.has_warning
    assert "Other story" not in result.content_html


def test_structured_data_body_is_adopted_when_much_longer(monkeypatch):
    article_body = "\n\n".join(
        (SENTENCE * 4).strip() for _ in range(12)
    )
    payload = {"@context": "https://schema.org", "@type": "NewsArticle", "articleBody": article_body}
    html = _page(
        f"<div class='story'>{_paragraphs(4, 225)}</div>",
        head=f'<script type="application/ld+json">{json.dumps(payload)}</script>',
    )
    monkeypatch.setattr(
        parser, "_run_readability", _fake_readability(_paragraphs(4, 225))
    )

    result = parser.ContentExtractor().extract(html, BASE_URL, TIMESTAMP)

    assert result is not None
    assert result.extraction_mode == MODE_STRUCTURED_DATA
    assert result.content_html.count("<p>") == 12
    assert result.quality.extracted_text_length > 2500


def test_extract_returns_none_when_readability_fails(monkeypatch):
    def fail(document_html, base_url):
        raise ExtractionFailure("nothing readable", url=base_url)

    monkeypatch.setattr(parser, "_run_readability", fail)

    assert parser.ContentExtractor().extract(_page("<p>hi</p>"), BASE_URL, TIMESTAMP) is None
    assert parser.ContentExtractor().extract("   ", BASE_URL, TIMESTAMP) is None


def test_readability_runs_on_a_copy_of_the_document(monkeypatch):
    seen = {}

    def run(document_html, base_url):
        seen["html"] = document_html
        return "t", _paragraphs(10)

    monkeypatch.setattr(parser, "_run_readability", run)
    parser.ContentExtractor().extract(
        _page('<article><p onclick="track()">Body</p></article>'), BASE_URL, TIMESTAMP
    )

    assert "onclick" not in seen["html"]
    assert "<article>" in seen["html"]


def test_extractor_honours_a_custom_archive_origin(monkeypatch):
    mirror = "https://archive.test"
    replay_base = f"{mirror}/web/{TIMESTAMP}/{BASE_URL}"
    hero = f"{mirror}/web/{TIMESTAMP}im_/https://example.com/hero.jpg"
    about = f"{mirror}/web/{TIMESTAMP}/https://example.com/about"
    html = _page(
        f"<article>{_paragraphs(31)}</article>",
        head=f'<meta property="og:image" content="{hero}">',
    )
    summary = _paragraphs(30) + f'<p><a href="{about}">about</a></p>'
    monkeypatch.setattr(parser, "_run_readability", _fake_readability(summary))

    result = parser.ContentExtractor(origin=mirror).extract(html, replay_base, TIMESTAMP)

    # Already-archived resources keep their capture URL on the same origin.
    assert result.hero_image == hero
    assert f'href="{about}"' in result.content_html
    assert "web.archive.org" not in result.content_html
    assert result.publication_name == "Example"


def test_clean_content_strips_active_content_and_archives_resources():
    content = dom.parse_fragment(
        '<p onclick="x()">Hi <a href="/about">about</a> '
        '<a href="javascript:alert(1)">bad</a> <a href="#note">note</a></p>'
        "<script>evil()</script>"
        '<img src="data:image/gif;base64,AAAA" data-src="/img/a.jpg">'
        '<video><source src="/media/v.mp4"></video>'
        '<noscript><img src="/img/b.jpg"></noscript>'
    )

    parser.clean_content(content, BASE_URL, TIMESTAMP)
    cleaned = dom.inner_html(content)

    assert "<script" not in cleaned
    assert "onclick" not in cleaned
    assert "javascript:" not in cleaned
    assert 'href="https://web.archive.org/web/20240101000000/https://example.com/about"' in cleaned
    assert 'href="#note"' in cleaned
    assert 'src="https://web.archive.org/web/20240101000000im_/https://example.com/img/a.jpg"' in cleaned
    assert 'src="https://web.archive.org/web/20240101000000id_/https://example.com/media/v.mp4"' in cleaned
    assert "https://web.archive.org/web/20240101000000im_/https://example.com/img/b.jpg" in cleaned


def test_captions_are_reattached_from_the_original_dom():
    original = dom.parse_html(
        "<html><body><figure><img src='/img/a.jpg'>"
        "<figcaption>Harbour at dawn</figcaption></figure></body></html>"
    )
    index = captions.build_caption_index(original, BASE_URL)
    assert index.first_figure_image_url == "https://example.com/img/a.jpg"

    content = dom.parse_fragment(
        "<p>Intro</p>"
        "<img src='https://web.archive.org/web/20240101000000im_/https://example.com/img/a.jpg'>"
        "<p>More</p>"
        "<figure><img src='https://example.com/img/a.jpg?w=800'></figure>"
    )
    captions.attach_captions(content, BASE_URL, index)
    html = dom.inner_html(content)

    assert '<p class="image-caption">Harbour at dawn</p>' in html
    assert "<figcaption>Harbour at dawn</figcaption>" in html


def test_ambiguous_basenames_are_not_indexed():
    original = dom.parse_html(
        "<html><body>"
        "<figure><img src='https://a.example.com/photo.jpg'><figcaption>One</figcaption></figure>"
        "<figure><img src='https://b.example.com/photo.jpg'><figcaption>Two</figcaption></figure>"
        "</body></html>"
    )
    index = captions.build_caption_index(original, BASE_URL)
    assert "photo.jpg" not in index.by_basename
    assert index.lookup("https://a.example.com/photo.jpg", BASE_URL) == "One"


@pytest.mark.parametrize(
    "content_html, expected_prefix",
    [
        ("<p>Body</p>", '<figure class="reader-hero"><img src="https://example.com/h.jpg" alt="" />'),
        ('<p><img src="https://example.com/h.jpg"></p>', "<p><img"),
    ],
)
def test_prepend_hero_image_skips_duplicates(content_html, expected_prefix):
    result = captions.prepend_hero_image(content_html, "https://example.com/h.jpg")
    assert result.startswith(expected_prefix)


def test_structured_body_html_splits_paragraphs():
    assert (
        parser.structured_body_html("First & one.\n\nSecond.")
        == "<p>First &amp; one.</p><p>Second.</p>"
    )
    assert (
        parser.structured_body_html("<p>First &amp; one.</p><p>Second.</p>")
        == "<p>First &amp; one.</p><p>Second.</p>"
    )
