import pytest

from archive_reader.services import archive_utils
from archive_reader.services.exceptions import ValidationError

ORIGIN = "https://web.archive.org"


@pytest.mark.parametrize(
    "raw, message",
    [
        (None, "Missing url parameter."),
        ("   ", "Missing url parameter."),
        ("ftp://example.com/file", "Please provide a valid http or https URL."),
        ("not a url", "Please provide a valid http or https URL."),
    ],
)
def test_validate_target_url_rejects_bad_input(raw, message):
    with pytest.raises(ValidationError) as excinfo:
        archive_utils.validate_target_url(raw)
    assert str(excinfo.value) == message


def test_validate_target_url_drops_fragment_and_fills_path():
    assert (
        archive_utils.validate_target_url(" HTTPS://example.com#top ")
        == "https://example.com/"
    )
    assert (
        archive_utils.validate_target_url("https://example.com/a?b=1#c")
        == "https://example.com/a?b=1"
    )


def test_build_archive_url_round_trips_through_strip_prefix():
    url = "https://example.com/news/story?id=7"
    for modifier in (None, "im", "id"):
        archived = archive_utils.build_archive_url(
            url, "20240102030405", modifier, origin=ORIGIN
        )
        assert archive_utils.strip_archive_prefix(archived, origin=ORIGIN) == url


def test_build_archive_url_shapes():
    url = "https://example.com/a.jpg"
    assert (
        archive_utils.build_archive_url(url, "20240102030405", "im", origin=ORIGIN)
        == "https://web.archive.org/web/20240102030405im_/https://example.com/a.jpg"
    )
    assert archive_utils.build_archive_url(url, None, "im", origin=ORIGIN) == url


def test_build_archive_url_swaps_modifier_on_archived_urls():
    archived = "https://web.archive.org/web/20200101000000/https://example.com/a.jpg"
    assert (
        archive_utils.build_archive_url(archived, "20240102030405", "im", origin=ORIGIN)
        == "https://web.archive.org/web/20200101000000im_/https://example.com/a.jpg"
    )
    assert (
        archive_utils.build_archive_url(archived, "20240102030405", None, origin=ORIGIN)
        == archived
    )


def test_extract_timestamp_never_returns_partial_values():
    capture = "https://web.archive.org/web/20231231235959/https://example.com/"
    assert archive_utils.extract_timestamp(capture) == "20231231235959"
    assert archive_utils.extract_timestamp(capture, "20240101000000") == "20240101000000"
    assert archive_utils.extract_timestamp(capture, "2024") == "20231231235959"
    assert archive_utils.extract_timestamp("https://example.com/", "123") is None


def test_generate_url_variants_keeps_original_first():
    variants = archive_utils.generate_url_variants("https://example.com/story")
    assert variants == [
        "https://example.com/story",
        "https://example.com/story/",
        "https://www.example.com/story",
        "https://www.example.com/story/",
    ]


def test_generate_url_variants_strips_www_and_skips_root_toggle():
    variants = archive_utils.generate_url_variants("https://www.example.com/")
    assert variants == ["https://www.example.com/", "https://example.com/"]


def test_generate_url_variants_leaves_ip_hosts_alone():
    variants = archive_utils.generate_url_variants("http://127.0.0.1:8080/page/")
    assert variants == ["http://127.0.0.1:8080/page/", "http://127.0.0.1:8080/page"]


def test_rewrite_srcset_archives_each_candidate():
    rewritten = archive_utils.rewrite_srcset(
        "/a.jpg 1x, https://cdn.example.com/b.jpg 2x",
        "https://example.com/post",
        "20240102030405",
        "im",
    )
    assert rewritten == (
        "https://web.archive.org/web/20240102030405im_/https://example.com/a.jpg 1x, "
        "https://web.archive.org/web/20240102030405im_/https://cdn.example.com/b.jpg 2x"
    )
