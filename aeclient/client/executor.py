from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import requests

from aeclient.auth.session import SessionManager
from aeclient.errors import SessionExchangeError, TransportError
from aeclient.messages import (
    NO_AUTH_TOKEN,
    RECEIVING_RESPONSE,
    SENDING_REQUEST,
    auth_failed,
    method_failed,
    received,
    sent,
)
from aeclient.models import Failure, Headers, Outcome, Request, Response
from aeclient.transport import TransportFactory, flatten_headers, header_multimap

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


class RequestExecutor:
    """
    Blocking GET/POST against an app, always authenticated before anything is sent.

    get() and post() perform network I/O inline; call them from a thread that may
    block (never from an event loop or UI thread). They never raise: on failure they
    return None and error_message() says why.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        transport_factory: TransportFactory = requests.Session,
        timeout: float = 30.0,
    ) -> None:
        self.session_manager = session_manager
        self._transport_factory = transport_factory
        self._timeout = timeout
        self._failure: Optional[Failure] = None
        # Background dispatches share this executor; SessionManager.setup() is not reentrant.
        self._setup_lock = threading.Lock()

    @property
    def failure(self) -> Optional[Failure]:
        return self._failure

    def error_message(self) -> Optional[str]:
        """Diagnostic for the last get()/post() that returned None."""
        return self._failure.message if self._failure else None

    def get(self, uri: str, headers: Optional[Headers] = None) -> Optional[Response]:
        return self._run(Request.get(uri, headers))

    def post(self, uri: str, headers: Optional[Headers], body: bytes) -> Optional[Response]:
        return self._run(Request.post(uri, headers, body))

    def _run(self, request: Request) -> Optional[Response]:
        self._failure = None
        outcome = self.execute(request)
        if isinstance(outcome, Failure):
            self._failure = outcome
            return None
        return outcome

    def execute(self, request: Request, reporter: Optional[Reporter] = None) -> Outcome:
        """
        Run one request to completion and return its Response or Failure.

        Does not touch this executor's error_message(), so several requests may run
        through one executor concurrently (as background dispatches do).
        """
        with self._setup_lock:
            ready = self.session_manager.setup()
        if not ready:
            return self._session_failure()
        return self._exchange(request, reporter)

    def _exchange(self, request: Request, reporter: Optional[Reporter]) -> Outcome:
        _report(reporter, SENDING_REQUEST)
        conn = None
        resp = None
        try:
            conn = self._transport_factory()
            if not self.session_manager.authenticate(conn):
                return self._session_failure()

            headers = flatten_headers(request.headers)
            if request.body is not None:
                headers["Content-Length"] = str(len(request.body))
            prepared = conn.prepare_request(
                requests.Request(request.method, request.uri, headers=headers, data=request.body)
            )

            # send() writes the whole body and returns once the response head is in, so
            # "Sent" is reported after the status line arrives but before the body is read.
            resp = conn.send(prepared, stream=True, timeout=self._timeout)
            if request.body is not None:
                _report(reporter, sent(len(request.body)))

            _report(reporter, RECEIVING_RESPONSE)
            body = resp.content
            _report(reporter, received(len(body)))
            return Response(status=resp.status_code, headers=header_multimap(resp), body=body)
        except (OSError, ValueError) as e:
            # ValueError covers header values http.client cannot encode (UnicodeEncodeError).
            logger.warning(f"{request.method} {request.uri} failed: {type(e).__name__}: {e}")
            return TransportError(method_failed(request.method, str(e))).to_failure()
        finally:
            if resp is not None:
                resp.close()
            if conn is not None:
                conn.close()

    def _session_failure(self) -> Failure:
        failure = self.session_manager.failure
        if failure is None:
            failure = SessionExchangeError(auth_failed(NO_AUTH_TOKEN)).to_failure()
        return failure


def _report(reporter: Optional[Reporter], message: str) -> None:
    if reporter is not None:
        reporter(message)
