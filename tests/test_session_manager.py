"""
Unit tests for the session manager: token acquisition, forced refresh, cookie exchange.
"""

from __future__ import annotations

import io
import threading
from concurrent.futures import Future
from typing import List, Optional, Tuple

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from urllib3 import HTTPHeaderDict, HTTPResponse

from aeclient.auth.session import SessionManager, SessionState


class _FakeProvider:
    """Hands out tokens in order; optionally resolves them later from another thread."""

    def __init__(self, tokens: List[str], *, threaded: bool = False, error: Optional[Exception] = None) -> None:
        self.tokens = list(tokens)
        self.threaded = threaded
        self.error = error
        self.requested: List[str] = []
        self.invalidated: List[Tuple[str, str]] = []
        self.resolver_threads: List[str] = []

    def request_token(self, identity: str) -> "Future[str]":
        self.requested.append(identity)
        future: "Future[str]" = Future()

        def _resolve() -> None:
            self.resolver_threads.append(threading.current_thread().name)
            if self.error is not None:
                future.set_exception(self.error)
            else:
                future.set_result(self.tokens.pop(0))

        if self.threaded:
            threading.Timer(0.05, _resolve).start()
        else:
            _resolve()
        return future

    def invalidate_token(self, identity: str, token: str) -> None:
        self.invalidated.append((identity, token))


class _NeverResolves:
    def request_token(self, identity: str) -> "Future[str]":
        return Future()

    def invalidate_token(self, identity: str, token: str) -> None:
        raise AssertionError("nothing to invalidate")


def _no_data(req):  # type: ignore[no-untyped-def]
    raise AssertionError(f"unexpected data request to {req.url}")


def test_requires_token_or_account_with_provider():
    with pytest.raises(ValueError):
        SessionManager("https://app.example.com/")
    with pytest.raises(ValueError):
        SessionManager("https://app.example.com/", account="me@example.com")


def test_cold_interactive_setup_refreshes_token_once_then_exchanges(fake_transports, with_login):
    provider = _FakeProvider(["stale-token", "fresh-token"])
    transports = fake_transports(with_login(_no_data))
    sm = SessionManager.interactive(
        "https://app.example.com/", "me@example.com", provider, transport_factory=transports
    )

    assert sm.setup() is True

    assert provider.requested == ["me@example.com", "me@example.com"]
    assert provider.invalidated == [("me@example.com", "stale-token")]
    assert len(transports.sent) == 1
    login = transports.sent[0]
    assert login.method == "GET"
    assert login.url == "https://app.example.com/_ah/login?continue=http://localhost/&auth=fresh-token"
    assert transports.created[0].send_kwargs[0]["allow_redirects"] is False

    assert sm.state is SessionState.SESSION_ESTABLISHED
    assert sm.session is not None
    assert sm.session.cookie == "SACSID=session-cookie"
    assert sm.session.token == "fresh-token"
    assert sm.token() == "fresh-token"
    assert transports.created[0].close_calls == 1


def test_second_setup_is_idempotent_and_does_no_io(fake_transports, with_login):
    provider = _FakeProvider(["a", "b"])
    transports = fake_transports(with_login(_no_data))
    sm = SessionManager.interactive("https://app.example.com/", "me", provider, transport_factory=transports)

    assert sm.setup() is True
    assert sm.setup() is True

    assert len(provider.requested) == 2
    assert len(transports.created) == 1


def test_token_resolved_on_another_thread_unblocks_setup(fake_transports, with_login):
    provider = _FakeProvider(["a", "b"], threaded=True)
    transports = fake_transports(with_login(_no_data))
    sm = SessionManager.interactive("https://app.example.com/", "me", provider, transport_factory=transports)

    assert sm.setup() is True
    assert sm.session is not None and sm.session.token == "b"
    assert threading.current_thread().name not in provider.resolver_threads


def test_provider_failure_is_not_retried(fake_transports, with_login):
    provider = _FakeProvider([], error=RuntimeError("user declined"))
    transports = fake_transports(with_login(_no_data))
    sm = SessionManager.interactive("https://app.example.com/", "me", provider, transport_factory=transports)

    assert sm.setup() is False
    assert sm.error_message() == "Authentication failed: user declined"
    assert sm.failure is not None and sm.failure.kind == "credential"
    assert sm.state is SessionState.FAILED
    assert provider.requested == ["me"]
    assert provider.invalidated == []
    assert transports.created == []


def test_empty_token_is_a_credential_failure(fake_transports, with_login):
    provider = _FakeProvider(["", ""])
    sm = SessionManager.interactive(
        "https://app.example.com/", "me", provider, transport_factory=fake_transports(with_login(_no_data))
    )
    assert sm.setup() is False
    assert sm.error_message() == "Authentication failed: No authentication token"


def test_token_wait_can_time_out():
    sm = SessionManager.interactive("https://app.example.com/", "me", _NeverResolves(), token_timeout=0.05)
    assert sm.setup() is False
    assert sm.error_message() == "Authentication failed: Timed out waiting for authentication token"


def test_plain_origin_uses_acsid_cookie(fake_transports, with_login):
    transports = fake_transports(with_login(_no_data, set_cookies=["ACSID=abc123; Path=/", "OTHER=xyz"]))
    sm = SessionManager.with_token("http://app.example.com/", "tok", transport_factory=transports)

    assert sm.setup() is True
    assert sm.session is not None and sm.session.cookie == "ACSID=abc123"
    # Exchange still goes over TLS.
    assert transports.sent[0].url.startswith("https://app.example.com/_ah/login?")


def test_non_interactive_manager_never_calls_a_provider(fake_transports, with_login):
    transports = fake_transports(with_login(_no_data))
    sm = SessionManager.with_token("https://app.example.com/", "given-token", transport_factory=transports)

    assert sm.setup() is True
    assert transports.sent[0].url.endswith("&auth=given-token")
    assert sm.token() == "given-token"


def test_missing_cookie_fails_and_next_setup_retries(fake_transports, with_login):
    transports = fake_transports(with_login(_no_data, set_cookies=["OTHER=xyz"]))
    sm = SessionManager.with_token("https://app.example.com/", "tok", transport_factory=transports)

    assert sm.setup() is False
    assert sm.error_message() == "Authentication failed: No session cookie in login response"
    assert sm.failure is not None and sm.failure.kind == "protocol"
    assert sm.session is None

    transports.responder = with_login(_no_data, set_cookies=["SACSID=later; Path=/"])
    assert sm.setup() is True
    assert sm.session is not None and sm.session.cookie == "SACSID=later"
    assert sm.error_message() is None


def test_failed_interactive_setup_does_not_refresh_twice(fake_transports, with_login):
    provider = _FakeProvider(["a", "b", "c"])
    transports = fake_transports(with_login(_no_data, set_cookies=[]))
    sm = SessionManager.interactive("https://app.example.com/", "me", provider, transport_factory=transports)

    assert sm.setup() is False
    transports.responder = with_login(_no_data)
    assert sm.setup() is True

    assert provider.invalidated == [("me", "a")]
    assert sm.session is not None and sm.session.token == "c"


def test_exchange_io_error_is_reported_and_connection_released(fake_transports):
    def _boom(req):  # type: ignore[no-untyped-def]
        raise requests.ConnectionError("connection refused")

    transports = fake_transports(_boom)
    sm = SessionManager.with_token("https://app.example.com/", "tok", transport_factory=transports)

    assert sm.setup() is False
    assert sm.error_message() == "Authentication failed: ConnectionError: connection refused"
    assert sm.failure is not None and sm.failure.kind == "session_exchange"
    assert transports.created[0].close_calls == 1


def test_test_mode_bypasses_authentication(fake_transports):
    transports = fake_transports(_no_data)
    provider = _FakeProvider([])
    sm = SessionManager.interactive("http://192.168.1.7:8080/", "me", provider, transport_factory=transports)

    assert sm.setup() is True
    assert sm.session is not None
    assert sm.session.cookie == "Testing=TRUE"
    assert sm.session.token == "whatever"
    assert provider.requested == []
    assert transports.created == []


def test_authenticate_attaches_cookie_header(fake_transports, with_login):
    sm = SessionManager.with_token(
        "https://app.example.com/", "tok", transport_factory=fake_transports(with_login(_no_data))
    )
    conn = requests.Session()
    assert sm.authenticate(conn) is True
    assert conn.headers["Cookie"] == "SACSID=session-cookie"


def test_authenticate_fails_without_touching_sink(fake_transports, with_login):
    sm = SessionManager.with_token(
        "https://app.example.com/", "tok", transport_factory=fake_transports(with_login(_no_data, set_cookies=[]))
    )
    conn = requests.Session()
    assert sm.authenticate(conn) is False
    assert "Cookie" not in conn.headers


class _TrackingBody(io.BytesIO):
    """Remembers how far the body had been read when urllib3 closed it."""

    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.position_at_close: Optional[int] = None

    def close(self) -> None:
        if self.position_at_close is None:
            self.position_at_close = self.tell()
        super().close()


def test_login_body_is_drained_before_connection_release(fake_transports):
    page = b"<html>" + b"x" * 5000 + b"</html>"
    bodies: List[_TrackingBody] = []

    def _login(req):  # type: ignore[no-untyped-def]
        body = _TrackingBody(page)
        bodies.append(body)
        headers = HTTPHeaderDict()
        headers.add("Set-Cookie", "SACSID=session-cookie; Path=/")
        resp = requests.Response()
        resp.status_code = 302
        resp.raw = HTTPResponse(body=body, headers=headers, status=302, preload_content=False)
        resp.headers = CaseInsensitiveDict(headers)
        resp.request = req
        return resp

    transports = fake_transports(_login)
    sm = SessionManager.with_token("https://app.example.com/", "tok", transport_factory=transports)

    assert sm.setup() is True
    [body] = bodies
    assert body.position_at_close == len(page)
    assert transports.created[0].close_calls == 1


def test_token_acquisition_on_non_interactive_manager_raises():
    sm = SessionManager.with_token("https://app.example.com/", "tok")
    with pytest.raises(RuntimeError, match="interactive SessionManager"):
        sm._acquire_token()
