"""
Session management for App Engine style backends.

Authentication is a two step process: get an identity token from the credential
provider, then trade it at the app's login endpoint for a session cookie, which is
what gets attached to every later request. Session cookies live for about a day, so
a single SessionManager is normally enough for a whole REST dialogue.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple
from urllib.parse import urlsplit

import requests

from aeclient.auth.cookies import (
    TEST_COOKIE,
    TEST_TOKEN,
    extract_session_cookie,
    is_test_mode,
    login_url,
    session_cookie_name,
)
from aeclient.errors import ClientError, CredentialError, ProtocolError, SessionExchangeError
from aeclient.messages import NO_AUTH_TOKEN, NO_COOKIE, TOKEN_TIMEOUT, auth_failed
from aeclient.models import Failure
from aeclient.providers.credentials import CredentialProvider
from aeclient.transport import TransportFactory, header_values

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_ACQUIRED = "token_acquired"
    SESSION_ESTABLISHED = "session_established"
    FAILED = "failed"


@dataclass(frozen=True)
class Session:
    cookie: str  # `name=value`, ready for a Cookie header
    token: str
    origin: str


class SessionManager:
    """
    Turns a credential provider token into a session cookie for one app, and caches it.

    Interactive managers hold an account and a provider, which may prompt a human the
    first time a token is needed. Non-interactive managers hold a token obtained
    earlier (see `token()`) and never prompt, so they suit background jobs.

    Nothing here is synchronized: callers sharing one instance across threads must
    serialize their setup() calls.
    """

    def __init__(
        self,
        app_url: str,
        *,
        account: Optional[str] = None,
        provider: Optional[CredentialProvider] = None,
        auth_token: Optional[str] = None,
        transport_factory: TransportFactory = requests.Session,
        http_timeout: float = 30.0,
        token_timeout: Optional[float] = None,
    ) -> None:
        if auth_token is None and (not account or provider is None):
            raise ValueError("either auth_token, or account together with provider, is required")

        self.app_url = app_url
        self.account = account
        self._interactive = auth_token is None
        self._provider = provider if self._interactive else None
        self._token: Optional[str] = auth_token
        self._transport_factory = transport_factory
        self._http_timeout = http_timeout
        self._token_timeout = token_timeout

        self._session: Optional[Session] = None
        self._failure: Optional[Failure] = None
        self._state = SessionState.UNAUTHENTICATED
        self._refreshed = False

    @classmethod
    def interactive(cls, app_url: str, account: str, provider: CredentialProvider, **kwargs: Any) -> "SessionManager":
        return cls(app_url, account=account, provider=provider, **kwargs)

    @classmethod
    def with_token(cls, app_url: str, auth_token: str, **kwargs: Any) -> "SessionManager":
        return cls(app_url, auth_token=auth_token, **kwargs)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def failure(self) -> Optional[Failure]:
        return self._failure

    def error_message(self) -> Optional[str]:
        """Why the last setup() or authenticate() failed."""
        return self._failure.message if self._failure else None

    def setup(self) -> bool:
        """
        Establish the session unless one is already cached.

        Performs network I/O and may wait for a human, so it must not run on a thread
        that has to stay responsive. Returns False on failure; error_message() explains.
        """
        if self._session is not None:
            return True

        if is_test_mode(self.app_url):
            logger.info(f"Test mode for {urlsplit(self.app_url).hostname}: skipping authentication")
            self._token = TEST_TOKEN
            self._session = Session(cookie=TEST_COOKIE, token=TEST_TOKEN, origin=self.app_url)
            self._state = SessionState.SESSION_ESTABLISHED
            return True

        self._failure = None
        self._state = SessionState.UNAUTHENTICATED
        try:
            if self._interactive:
                self._token = self._acquire_fresh_token()
            self._state = SessionState.TOKEN_ACQUIRED

            cookie = self._exchange_cookie(self._token or "")
        except ClientError as e:
            self._fail(e)
            return False

        self._session = Session(cookie=cookie, token=self._token or "", origin=self.app_url)
        self._state = SessionState.SESSION_ESTABLISHED
        logger.info(f"Session established with {urlsplit(self.app_url).hostname}")
        return True

    def authenticate(self, sink: Any) -> bool:
        """
        Add the session cookie to an outbound transport object before use.

        `sink` is anything with a mutable `headers` mapping, e.g. a requests.Session.
        """
        if not self.setup():
            return False
        if self._session is None:
            raise RuntimeError("setup() succeeded without caching a session")
        sink.headers["Cookie"] = self._session.cookie
        return True

    def token(self) -> Optional[str]:
        """The identity token behind the session, or None if setup failed."""
        if not self.setup():
            return None
        return self._token

    def _fail(self, error: ClientError) -> None:
        self._failure = error.to_failure()
        self._state = SessionState.FAILED
        if self._interactive:
            # Next setup() starts over from the provider.
            self._token = None
        logger.warning(f"Session setup for {urlsplit(self.app_url).hostname} failed: {error}")

    def _require_provider(self) -> Tuple[CredentialProvider, str]:
        if self._provider is None or not self.account:
            raise RuntimeError("token acquisition needs an interactive SessionManager (account and provider)")
        return self._provider, self.account

    def _acquire_fresh_token(self) -> str:
        token = self._acquire_token()
        if self._refreshed:
            return token

        # A provider-cached token may already be stale for this app; force one refresh
        # per manager lifetime before trading it for a cookie.
        provider, account = self._require_provider()
        provider.invalidate_token(account, token)
        self._refreshed = True
        return self._acquire_token()

    def _acquire_token(self) -> str:
        """Block until the provider resolves, whichever thread it resolves on."""
        provider, account = self._require_provider()
        future = provider.request_token(account)

        resolved = threading.Condition()

        def _notify(_f: Any) -> None:
            with resolved:
                resolved.notify_all()

        future.add_done_callback(_notify)
        with resolved:
            if not resolved.wait_for(future.done, timeout=self._token_timeout):
                raise CredentialError(auth_failed(TOKEN_TIMEOUT))

        try:
            token = future.result()
        except Exception as e:
            raise CredentialError(auth_failed(str(e) or type(e).__name__)) from e
        if not token:
            raise CredentialError(auth_failed(NO_AUTH_TOKEN))
        return token

    def _exchange_cookie(self, token: str) -> str:
        name = session_cookie_name(self.app_url)
        conn = self._transport_factory()
        resp = None
        try:
            resp = conn.get(
                login_url(self.app_url, token),
                allow_redirects=False,
                stream=True,
                timeout=self._http_timeout,
            )
            # Drain the body so the connection can be reclaimed.
            for _ in resp.iter_content(chunk_size=1024):
                pass
            cookie = extract_session_cookie(header_values(resp, "Set-Cookie"), name)
        except OSError as e:
            raise SessionExchangeError(auth_failed(f"{type(e).__name__}: {e}")) from e
        finally:
            if resp is not None:
                resp.close()
            conn.close()

        if cookie is None:
            raise ProtocolError(auth_failed(NO_COOKIE))
        return cookie
