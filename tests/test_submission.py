import asyncio

import pytest
import requests

from archive_reader.services import submission
from archive_reader.services.exceptions import CaptureSubmissionRejected, NetworkError
from archive_reader.services.fetch import Deadline, DeadlineFetcher
from conftest import FakeResponse, FakeSession


def _submitter(session, endpoints):
    fetcher = DeadlineFetcher(Deadline.after(10.0), session=session)
    return submission.CaptureSubmitter(fetcher, endpoints, timeout=5.0)


@pytest.mark.parametrize(
    "status, detail, category",
    [
        (200, "Sorry, this page is blocked by robots.txt for the site.", "robots"),
        (403, "", "forbidden"),
        (200, "This URL is unavailable for archiving.", "blocked"),
        (429, "", "rate_limited"),
        (401, "", "unauthorized"),
        (404, "", "not_found"),
        (503, "", "service_error"),
        (200, "", "unknown"),
    ],
)
def test_classify_save_failure(status, detail, category):
    assert submission.classify_save_failure(status, detail).category == category


def test_robots_text_wins_over_status():
    classification = submission.classify_save_failure(
        503, "Blocked by the site's robots.txt file"
    )
    assert classification.category == "robots"
    assert classification.label == "Blocked by robots.txt"


def test_submit_accepts_and_reads_content_location(endpoints):
    session = FakeSession(
        [
            FakeResponse(
                status_code=302,
                headers={
                    "Content-Location": "/web/20240101000000/https://example.com/story"
                },
            )
        ]
    )

    result = asyncio.run(_submitter(session, endpoints).submit("https://example.com/story"))

    assert result.status_code == 302
    assert (
        result.archive_url
        == "https://web.archive.org/web/20240101000000/https://example.com/story"
    )
    assert session.calls[0].url == "https://web.archive.org/save/https://example.com/story"
    assert session.calls[0].allow_redirects is False


def test_submit_rejects_robots_block_even_with_ok_status(endpoints):
    session = FakeSession(
        [
            FakeResponse(
                status_code=200,
                text="<html><body><h1>Sorry</h1><p>Blocked by robots.txt</p></body></html>",
            )
        ]
    )

    with pytest.raises(CaptureSubmissionRejected) as excinfo:
        asyncio.run(_submitter(session, endpoints).submit("https://example.com/story"))

    rejected = excinfo.value
    assert rejected.category == "robots"
    assert rejected.status_code == 200
    assert rejected.detail == "Sorry Blocked by robots.txt"


def test_submit_rejects_error_status(endpoints):
    session = FakeSession([FakeResponse(status_code=520, text="")])

    with pytest.raises(CaptureSubmissionRejected) as excinfo:
        asyncio.run(_submitter(session, endpoints).submit("https://example.com/story"))

    assert excinfo.value.category == "service_error"
    assert excinfo.value.archive_url is None


def test_submit_propagates_network_failures(endpoints):
    session = FakeSession([requests.ConnectionError("refused")])

    with pytest.raises(NetworkError):
        asyncio.run(_submitter(session, endpoints).submit("https://example.com/story"))
