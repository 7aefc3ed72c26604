"""
Pytest config.

Local imports like `import aeclient` rely on the repo root being on sys.path. When
invoking a global `pytest` entrypoint that doesn't happen reliably during collection,
so we pin it here.

Network I/O is faked at the transport seam: every client takes a `transport_factory`
returning a `requests.Session`, and tests hand it `FakeTransport` instances that
record what would have been sent and answer with canned responses.
"""

from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

import requests  # noqa: E402
from requests.structures import CaseInsensitiveDict  # noqa: E402
from urllib3 import HTTPHeaderDict, HTTPResponse  # noqa: E402

Responder = Callable[[requests.PreparedRequest], requests.Response]


def make_response(
    status: int = 200,
    headers: Optional[Iterable[Tuple[str, str]]] = None,
    body: bytes = b"",
    request: Optional[requests.PreparedRequest] = None,
) -> requests.Response:
    """A requests.Response backed by a real (unread) urllib3 body, like stream=True gives."""
    raw_headers = HTTPHeaderDict()
    for name, value in headers or []:
        raw_headers.add(name, value)
    raw = HTTPResponse(
        body=io.BytesIO(body),
        headers=raw_headers,
        status=status,
        preload_content=False,
    )
    resp = requests.Response()
    resp.status_code = status
    resp.raw = raw
    resp.headers = CaseInsensitiveDict(raw_headers)
    resp.request = request
    resp.url = request.url if request is not None else ""
    return resp


class FakeTransport(requests.Session):
    def __init__(self, responder: Responder) -> None:
        super().__init__()
        self.trust_env = False
        self._responder = responder
        self.sent: List[requests.PreparedRequest] = []
        self.send_kwargs: List[dict] = []
        self.close_calls = 0

    def send(self, request, **kwargs):  # type: ignore[no-untyped-def]
        self.sent.append(request)
        self.send_kwargs.append(kwargs)
        return self._responder(request)

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class FakeTransportFactory:
    """Callable usable as `transport_factory`; remembers every transport it built."""

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        t = FakeTransport(self.responder)
        self.created.append(t)
        return t

    @property
    def sent(self) -> List[requests.PreparedRequest]:
        return [r for t in self.created for r in t.sent]


def login_responder(
    data: Responder,
    *,
    set_cookies: Iterable[str] = ("SACSID=session-cookie; Path=/; HttpOnly",),
) -> Responder:
    """Answer `/_ah/login` with the given Set-Cookie headers and everything else via `data`."""
    cookies = list(set_cookies)

    def _respond(req: requests.PreparedRequest) -> requests.Response:
        if "/_ah/login" in (req.url or ""):
            return make_response(302, [("Set-Cookie", c) for c in cookies], b"redirecting", request=req)
        return data(req)

    return _respond


@pytest.fixture
def http_response() -> Callable[..., requests.Response]:
    return make_response


@pytest.fixture
def fake_transports() -> Callable[[Responder], FakeTransportFactory]:
    return FakeTransportFactory


@pytest.fixture
def with_login() -> Callable[..., Responder]:
    return login_responder
