from archive_reader.utils import text_cleaner


def test_normalize_text_collapses_whitespace():
    assert text_cleaner.normalize_text("  a \n\t b  ") == "a b"
    assert text_cleaner.normalize_text(None) == ""
    assert text_cleaner.text_length(" hello   world ") == 11


def test_truncate_appends_ellipsis():
    assert text_cleaner.truncate("short", 10) == "short"
    assert text_cleaner.truncate("abcdefghijkl", 8) == "abcde..."


def test_strip_markup_drops_scripts_and_caps_length():
    raw = "<html><head><style>p{}</style><script>var x = 1;</script></head><body><p>Hello</p> <b>world</b></body></html>"
    assert text_cleaner.strip_markup(raw) == "Hello world"
    assert len(text_cleaner.strip_markup("<p>" + "x" * 2000 + "</p>")) == 600
    assert text_cleaner.strip_markup(None) == ""


def test_clean_text_removes_boilerplate_lines():
    raw = "First paragraph.\r\n\r\n\r\nAdvertisement\n\nSecond&nbsp;paragraph.\nSubscribe to our list"
    assert text_cleaner.clean_text(raw) == "First paragraph.\n\nSecond paragraph."


def test_paragraphs_from_text_prefers_blank_line_breaks():
    assert text_cleaner.paragraphs_from_text("a\nb\n\nc") == ["a b", "c"]
    assert text_cleaner.paragraphs_from_text("a\nb") == ["a", "b"]
