"""
Background execution of a single request with progress reporting.

The request runs on its own worker thread; every notification is marshalled back to
the event loop the dispatch was launched from, in the order it was produced.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Protocol

from aeclient.client.executor import RequestExecutor
from aeclient.errors import TransportError
from aeclient.messages import method_failed
from aeclient.models import Failure, Headers, Outcome, Request

logger = logging.getLogger(__name__)


class RequestCallback(Protocol):
    """Receives progress and exactly one terminal notification per background request."""

    def report_error(self, why: str) -> None:
        """
        Reports a problem: authentication failure or a network I/O error.

        HTTP-level problems (404s, 500s) are reported through done().
        """

    def report_progress(self, message: str) -> None:
        """Reports progress; called on the launching event loop's thread."""

    def done(self, status: int, headers: Headers, body: bytes) -> None:
        """Reports completion; never called after report_error()."""


class AsyncDispatcher:
    """
    Runs one request per instance; create a fresh dispatcher for every call.

    launch() must be called on the event loop thread that should receive the
    callbacks. Each dispatch gets its own worker thread and transport connection,
    so any number of dispatchers may be in flight at once.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        callback: RequestCallback,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._executor = executor
        self._callback = callback
        self._loop = loop
        self._launched = False
        self._delivered = False
        self._result: Optional["asyncio.Future[Outcome]"] = None

    def launch(self, request: Request) -> "asyncio.Future[Outcome]":
        """
        Start the request in the background.

        Returns a future that resolves with the outcome once the terminal callback ran.
        The loop must stay open until then: if it is closed first, the outcome (terminal
        notification included) is logged and dropped, because nothing is left to run it.
        """
        if self._launched:
            raise RuntimeError("AsyncDispatcher instances run exactly one request; create a new one")
        self._launched = True

        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._result = self._loop.create_future()

        worker = threading.Thread(
            target=self._run,
            args=(request,),
            name=f"dispatch-{request.method.lower()}",
            daemon=True,
        )
        worker.start()
        return self._result

    def _run(self, request: Request) -> None:
        try:
            outcome = self._executor.execute(request, reporter=self._publish_progress)
        except Exception as e:
            # execute() reports faults as values; anything escaping is a bug, but the
            # caller is still owed its terminal notification.
            logger.error(f"Background {request.method} {request.uri} crashed: {e}", exc_info=True)
            outcome = TransportError(method_failed(request.method, str(e))).to_failure()
        self._post(self._deliver, outcome)

    def _publish_progress(self, message: str) -> None:
        self._post(self._callback.report_progress, message)

    def _post(self, fn, arg) -> None:  # type: ignore[no-untyped-def]
        if self._loop is None:
            raise RuntimeError("AsyncDispatcher has not been launched")
        try:
            self._loop.call_soon_threadsafe(fn, arg)
        except RuntimeError:
            logger.warning("Event loop closed before a background request finished; dropping notification")

    def _deliver(self, outcome: Outcome) -> None:
        if self._delivered:
            return
        self._delivered = True
        try:
            if isinstance(outcome, Failure):
                self._callback.report_error(outcome.message)
            else:
                self._callback.done(outcome.status, outcome.headers, outcome.body)
        finally:
            if self._result is not None and not self._result.done():
                self._result.set_result(outcome)
