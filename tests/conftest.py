import json
from types import SimpleNamespace

import pytest

from archive_reader.config import RequestBudget, WaybackEndpoints


class FakeResponse:
    def __init__(
        self, status_code=200, text="", url="https://example.com", headers=None
    ):
        self.status_code = status_code
        self.text = text
        self.url = url
        self.headers = headers or {}


def json_response(payload, status_code=200):
    return FakeResponse(status_code=status_code, text=json.dumps(payload))


class FakeSession:
    """Answers ``get`` from a list of canned responses, in call order."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def get(self, url, headers, timeout, allow_redirects):
        call_number = len(self.calls)
        self.calls.append(
            SimpleNamespace(
                url=url,
                headers=headers,
                timeout=timeout,
                allow_redirects=allow_redirects,
            )
        )
        response = self._responses[call_number]
        if isinstance(response, Exception):
            raise response
        return response


class RoutingSession:
    """Answers ``get`` by calling ``router(url)``; records every call."""

    def __init__(self, router):
        self.router = router
        self.calls = []

    def get(self, url, headers, timeout, allow_redirects):
        self.calls.append(
            SimpleNamespace(
                url=url,
                headers=headers,
                timeout=timeout,
                allow_redirects=allow_redirects,
            )
        )
        response = self.router(url)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def endpoints():
    return WaybackEndpoints(
        origin="https://web.archive.org",
        availability_url="https://archive.org/wayback/available",
        cdx_url="https://web.archive.org/cdx/search/cdx",
        save_url="https://web.archive.org/save",
        user_agent="ArchiveReaderTests/1.0",
    )


@pytest.fixture()
def budget():
    return RequestBudget(
        deadline_seconds=9.0,
        reserve_seconds=0.5,
        api_timeout=3.0,
        snapshot_timeout=6.0,
        save_timeout=5.0,
        min_call_timeout=0.25,
        min_attempt_seconds=1.0,
        variant_min_seconds=2.0,
        history_limit=6,
    )


@pytest.fixture()
def app():
    from archive_reader import create_app

    app = create_app({"TESTING": True})
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()
