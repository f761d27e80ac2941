"""Shared fixtures: an in-memory stand-in for the symbol server HTTP session."""
import os
import sys
import threading

import pytest
import requests

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


SAMPLE_SYM = """MODULE windows x86_64 0123ABCD1 foo.dll.pdb
INFO CODE_ID 5F0A1B2C3000 foo.dll
FILE 1 a.cc
FILE 2 c:\\src\\b file.h
FUNC 1000 50 0 foo
1010 10 42 1
1020 8 43 2
FUNC m 2000 20 8 shared_thunk
PUBLIC 3000 0 bar_public
STACK CFI INIT 1000 50 .cfa: $rsp 8 + .ra: .cfa -8 + ^
"""


class MockResponse:
    """Minimal streaming requests.Response."""

    def __init__(self, status_code=200, body=b"", chunk_size=16, fail_after_chunks=None):
        self.status_code = status_code
        self.body = body
        self.chunk_size = chunk_size
        self.fail_after_chunks = fail_after_chunks
        self.closed = False

    def iter_content(self, chunk_size=1):
        for n, start in enumerate(range(0, len(self.body), self.chunk_size)):
            if self.fail_after_chunks is not None and n >= self.fail_after_chunks:
                raise requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead")
            yield self.body[start:start + self.chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class MockSession:
    """
    Routes GET requests by URL. Unknown URLs return 404.

    ``routes`` values are MockResponse objects, exceptions to raise, or
    callables returning either.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []
        self._lock = threading.Lock()

    def get(self, url, stream=False, timeout=None):
        with self._lock:
            self.requested.append(url)
        route = self.routes.get(url)
        if callable(route) and not isinstance(route, MockResponse):
            route = route()
        if isinstance(route, BaseException):
            raise route
        if route is None:
            return MockResponse(404)
        return route


@pytest.fixture
def sample_sym():
    return SAMPLE_SYM


@pytest.fixture
def mock_session_factory():
    return MockSession


@pytest.fixture
def ok_response():
    def make(body=SAMPLE_SYM):
        return MockResponse(200, body.encode("utf-8") if isinstance(body, str) else body)
    return make


@pytest.fixture
def mock_response():
    return MockResponse
