"""
Credential providers: where identity tokens come from.

Providers resolve asynchronously. `request_token` returns a future that may already
be done (cached token) or may be resolved later from another thread, for example
after a human typed a token in. The session manager blocks on that resolution.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

import click

from aeclient.errors import CredentialError
from aeclient.messages import NO_AUTH_TOKEN

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Platform-held identity credentials (external collaborator)."""

    def request_token(self, identity: str) -> "Future[str]":
        """
        Ask for an identity token for `identity`.

        The returned future resolves with the token, or with an exception whose
        message explains why no token could be supplied. Resolution may happen on
        any thread.
        """
        ...

    def invalidate_token(self, identity: str, token: str) -> None:
        """Forget `token` so the next request_token() produces a fresh one."""
        ...


class CachingCredentialProvider:
    """
    Shared plumbing: per-identity token cache plus one worker thread per fetch.

    Subclasses implement `_fetch(identity) -> str`, which may block.
    """

    def __init__(self, tokens: Optional[Dict[str, str]] = None) -> None:
        self._tokens: Dict[str, str] = dict(tokens or {})
        self._lock = threading.Lock()

    def request_token(self, identity: str) -> "Future[str]":
        future: "Future[str]" = Future()
        with self._lock:
            cached = self._tokens.get(identity)
        if cached:
            future.set_result(cached)
            return future

        worker = threading.Thread(
            target=self._resolve,
            args=(identity, future),
            name=f"token-{identity}",
            daemon=True,
        )
        worker.start()
        return future

    def invalidate_token(self, identity: str, token: str) -> None:
        with self._lock:
            if self._tokens.get(identity) == token:
                del self._tokens[identity]
                logger.info(f"Invalidated cached token for {identity}")

    def _resolve(self, identity: str, future: "Future[str]") -> None:
        try:
            token = self._fetch(identity)
        except Exception as e:
            # Handed to the waiting session manager, which reports it.
            future.set_exception(e)
            return
        with self._lock:
            self._tokens[identity] = token
        future.set_result(token)

    def _fetch(self, identity: str) -> str:
        raise NotImplementedError


class CommandCredentialProvider(CachingCredentialProvider):
    """
    Non-prompting provider that runs a shell command and uses its stdout as the token.

    Example: `CommandCredentialProvider("gcloud auth print-access-token {identity}")`.
    The `{identity}` placeholder is optional.
    """

    def __init__(self, command: str, *, timeout: float = 60.0, tokens: Optional[Dict[str, str]] = None) -> None:
        super().__init__(tokens)
        self.command = command
        self.timeout = timeout

    def _fetch(self, identity: str) -> str:
        cmd = self.command.replace("{identity}", identity)
        logger.info(f"Fetching token for {identity} via command")
        try:
            proc = subprocess.run(cmd, shell=True, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise CredentialError(f"Token command timed out after {e.timeout}s") from e
        if proc.returncode != 0:
            detail = (proc.stderr or "").strip() or f"exit status {proc.returncode}"
            raise CredentialError(f"Token command failed: {detail}")
        token = (proc.stdout or "").strip()
        if not token:
            raise CredentialError(NO_AUTH_TOKEN)
        return token


class PromptCredentialProvider(CachingCredentialProvider):
    """Interactive provider: asks a human for the token (hidden input)."""

    def __init__(
        self,
        prompt: Callable[..., Any] = click.prompt,
        *,
        tokens: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(tokens)
        self._prompt = prompt

    def _fetch(self, identity: str) -> str:
        value = self._prompt(
            f"Identity token for {identity}",
            hide_input=True,
            default="",
            show_default=False,
        )
        token = str(value or "").strip()
        if not token:
            raise CredentialError(NO_AUTH_TOKEN)
        return token
