"""Shared fixtures: in-memory database and a scriptable fake HTTP session."""

import pytest
import requests

from cpa_intel.storage.database import IntelDatabase


class FakeResponse:
    def __init__(self, text="", url="https://directory.test/", status_code=200, cookies=None, content=None):
        self.text = text
        self.url = url
        self.status_code = status_code
        self.cookies = dict(cookies or {})
        self.content = content if content is not None else text.encode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeHttp:
    """Stands in for requests.Session; ``handler(method, url, kwargs)`` decides each response.

    A handler may return an exception instance to have it raised.
    """

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, kwargs)

    def _dispatch(self, method, url, kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        result = self.handler(method, url, kwargs)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    database = IntelDatabase("sqlite://")
    yield database
    database.close()


@pytest.fixture
def make_http():
    return FakeHttp


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def sleeps():
    """Pass ``sleeps.append`` as the sleep function to record delays instead of sleeping."""
    return []
