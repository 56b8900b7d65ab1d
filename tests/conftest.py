"""Global test fixtures for Endeavor tools."""

from http.client import HTTPMessage
from threading import Lock
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from pytest import fixture
from requests import Response, Session
from requests.adapters import BaseAdapter

from endeavor_tools import EndeavorSession
from endeavor_tools.session import AUTH_COOKIES, BASE_URL, LOGIN_PATH, TIMELINE_PATH

HOST = "www.endeavor.net.br"

TIMELINE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>Timeline</title></head>
<body>
<div class="wrapper fullheight-side">
  <div class="main-panel full-height">
    <div class="content">
      <div>
        <div class="col-md-12">
          <div>
            <div>
{items}
            </div>
          </div>
        </div>
      </div>
    </div>
  </div>
</div>
</body>
</html>
"""

ITEM_TEMPLATE = """              <div class="d-flex">
                <div class="avatar avatar-online"></div>
                <div class="flex-1 ml-3 pt-1">
                  <h6 class="text-uppercase fw-bold mb-1"><b>{id_date}</b></h6>
                  <span class="text-muted">{project_info}</span>
                </div>
              </div>"""


def pytest_addoption(parser):
    """Add custom pytest command line options."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="run end-to-end tests",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test")


def pytest_collection_modifyitems(config, items):
    """Skip end-to-end tests unless --e2e option is used."""
    if config.getoption("--e2e"):
        # When --e2e is used, run all tests including end-to-end tests
        return

    skip_e2e = pytest.mark.skip(reason="need --e2e option to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


def make_timeline_html(*items) -> str:
    """Render a timeline page with one entry per (id_date, fragments) item."""
    rendered = [
        ITEM_TEMPLATE.format(id_date=id_date, project_info="<br/>".join(fragments))
        for id_date, fragments in items
    ]
    return TIMELINE_TEMPLATE.format(items="\n".join(rendered))


def make_response(url: str, status_code: int = 200, text: str = "") -> Response:
    """Build a real requests.Response without touching the network."""
    response = Response()
    response.status_code = status_code
    response.url = url
    response.encoding = "utf-8"
    response._content = text.encode("utf-8")
    return response


class FakePortal:
    """Stand-in for the Endeavor server, routed on the path relative to BASE_URL.

    Args:
        timeline_html: Body returned for the timeline page
        auth_cookies: Cookies set on the session by a successful login post
        statuses: Status code per path; anything not listed answers 200
    """

    def __init__(self, timeline_html: str = "", auth_cookies=AUTH_COOKIES):
        self.timeline_html = timeline_html
        self.auth_cookies = auth_cookies
        self.statuses: dict[str, int] = {}
        self.errors: dict[str, Exception] = {}
        self.on_request = None
        self.calls: list[tuple[str, str]] = []
        self.requests: list[dict] = []
        self._lock = Lock()

    def handle(self, session, method, url, data=None, **kwargs):
        path = url.removeprefix(BASE_URL)
        with self._lock:
            self.calls.append((method, path))
            self.requests.append({"method": method, "path": path, "data": data, **kwargs})
        if self.on_request is not None:
            self.on_request(method, path)
        if path in self.errors:
            raise self.errors[path]

        status = self.statuses.get(path, 200)
        if path == LOGIN_PATH and status == 200:
            for name in self.auth_cookies:
                session.cookies.set(name, "opaque-token", domain=HOST, path="/")
        text = self.timeline_html if path == TIMELINE_PATH else "<html></html>"
        return make_response(url, status, text)

    def paths(self, method: str = None) -> list[str]:
        return [p for m, p in self.calls if method is None or m == method]


class CookiePortalAdapter(BaseAdapter):
    """Transport adapter answering like the portal, including Set-Cookie headers.

    Responses go back through `Session.send`, so the session cookie jar
    absorbs every Set-Cookie and attaches cookies to every request itself.
    Each submit post also sets a cookie named after its entry id.
    """

    def __init__(self, base_url: str = BASE_URL):
        super().__init__()
        self.base_url = base_url
        self.sent: list[tuple[str, str, str]] = []
        self._lock = Lock()

    def send(self, request, **kwargs):
        path = request.url.removeprefix(self.base_url)
        with self._lock:
            cookie = request.headers.get("Cookie", "")
            self.sent.append((request.method, path, cookie))

        headers = HTTPMessage()
        if path == LOGIN_PATH:
            for name in AUTH_COOKIES:
                headers["Set-Cookie"] = f"{name}=opaque-token; Path=/"
        elif "Action=Post" in path:
            entry_id = path.rpartition("app_id=")[2]
            headers["Set-Cookie"] = f"posted_{entry_id}=1; Path=/"

        response = make_response(request.url)
        response.request = request
        response.raw = SimpleNamespace(_original_response=SimpleNamespace(msg=headers))
        return response

    def close(self):
        pass

    def cookie_names_sent(self, path: str) -> list[set[str]]:
        """Cookie names attached to each request sent to path."""
        return [
            {pair.partition("=")[0] for pair in cookie.split("; ") if pair}
            for _, p, cookie in self.sent
            if p == path
        ]


@fixture
def portal():
    """Patch the transport so every request is answered by a FakePortal."""
    fake = FakePortal()
    with patch.object(Session, "request", autospec=True, side_effect=fake.handle):
        yield fake


@fixture
def session(portal):
    with EndeavorSession() as s:
        yield s


@fixture
def logged_in(session, portal):
    """A session that has completed login; the recorded calls are reset."""
    session.login("user001", "secret")
    portal.calls.clear()
    portal.requests.clear()
    return session
