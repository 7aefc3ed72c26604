from __future__ import annotations

import asyncio
from typing import Optional

import requests

from aeclient.auth.session import SessionManager
from aeclient.client.dispatcher import AsyncDispatcher, RequestCallback
from aeclient.client.executor import RequestExecutor
from aeclient.config import ClientConfig
from aeclient.models import Headers, Outcome, Request, Response
from aeclient.providers.credentials import CommandCredentialProvider, CredentialProvider, PromptCredentialProvider
from aeclient.transport import TransportFactory


class EngineClient:
    """
    Performs GET and POST operations against an App Engine style app, authenticating
    with a platform identity. One client serves many requests.

    Constructing a client does no I/O. get()/post() block; background_get() and
    background_post() return at once and report through a RequestCallback on the
    calling event loop.
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
        self._sessions = SessionManager(
            app_url,
            account=account,
            provider=provider,
            auth_token=auth_token,
            transport_factory=transport_factory,
            http_timeout=http_timeout,
            token_timeout=token_timeout,
        )
        self._executor = RequestExecutor(self._sessions, transport_factory=transport_factory, timeout=http_timeout)

    @classmethod
    def from_config(cls, cfg: ClientConfig, provider: Optional[CredentialProvider] = None) -> "EngineClient":
        if not cfg.app_url:
            raise ValueError("AEC_APP_URL is not configured")
        if not cfg.interactive:
            return cls(
                cfg.app_url,
                auth_token=cfg.auth_token,
                http_timeout=cfg.http_timeout_seconds,
            )
        if not cfg.account:
            raise ValueError("AEC_ACCOUNT is required when AEC_AUTH_TOKEN is not set")
        if provider is None:
            if cfg.token_command:
                provider = CommandCredentialProvider(cfg.token_command)
            else:
                provider = PromptCredentialProvider()
        return cls(
            cfg.app_url,
            account=cfg.account,
            provider=provider,
            http_timeout=cfg.http_timeout_seconds,
            token_timeout=cfg.token_timeout_seconds,
        )

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    def get(self, uri: str, headers: Optional[Headers] = None) -> Optional[Response]:
        """Blocking GET; None on failure (see error_message())."""
        return self._executor.get(uri, headers)

    def post(self, uri: str, headers: Optional[Headers], body: bytes) -> Optional[Response]:
        """Blocking POST; None on failure (see error_message())."""
        return self._executor.post(uri, headers, body)

    def error_message(self) -> Optional[str]:
        return self._executor.error_message()

    def background_get(
        self, uri: str, headers: Optional[Headers], callback: RequestCallback
    ) -> "asyncio.Future[Outcome]":
        return AsyncDispatcher(self._executor, callback).launch(Request.get(uri, headers))

    def background_post(
        self, uri: str, headers: Optional[Headers], body: bytes, callback: RequestCallback
    ) -> "asyncio.Future[Outcome]":
        return AsyncDispatcher(self._executor, callback).launch(Request.post(uri, headers, body))
