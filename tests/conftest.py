# tests/conftest.py
import sys
import json
from pathlib import Path
import pytest

# project root (where hypem_resolver.py lives) on PYTHONPATH
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hypem_resolver import HypemConfig

TEST_COOKIE = "AUTH=03:test-cookie:1:2:10-DE"


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """
    Stands in for requests.Session. Responses are looked up by URL; a value that
    is an exception instance is raised instead of returned.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _answer(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        res = self.routes.get((method, url))
        if res is None:
            return FakeResponse(status_code=404)
        if isinstance(res, Exception):
            raise res
        return res

    def head(self, url, **kwargs):
        return self._answer("HEAD", url, kwargs)

    def get(self, url, **kwargs):
        return self._answer("GET", url, kwargs)

    def urls(self, method=None):
        return [u for m, u, _ in self.calls if method is None or m == method]


def track_page(payload: str) -> str:
    return (
        "<html><head><title>hypem</title></head><body>\n"
        '<script type="application/json" id="displayList-data">\n'
        f"  {payload}\n"
        '</script>\n<script type="text/javascript">var x = 1;</script>\n'
        "</body></html>"
    )


@pytest.fixture
def config():
    return HypemConfig(auth_cookie=TEST_COOKIE)


@pytest.fixture
def session():
    return FakeSession()
