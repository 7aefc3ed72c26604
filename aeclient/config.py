from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class ClientConfig:
    # Target app, e.g. https://your-app.appspot.com/
    app_url: Optional[str]

    # Interactive mode: account to authenticate as (tokens come from a provider)
    account: Optional[str]
    token_command: Optional[str]  # Shell command printing a fresh identity token

    # Non-interactive mode: pre-obtained identity token (never prompts)
    auth_token: Optional[str]

    http_timeout_seconds: float
    token_timeout_seconds: Optional[float]  # None waits for the provider indefinitely

    @property
    def interactive(self) -> bool:
        """Interactive unless a token was handed to us up front."""
        return not self.auth_token


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_seconds(name: str) -> Optional[float]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None  # fall back to the default


@lru_cache(maxsize=1)
def load_client_config() -> ClientConfig:
    """
    Load client configuration from environment variables.

    AEC_AUTH_TOKEN selects the non-interactive mode; otherwise AEC_ACCOUNT is used
    together with AEC_TOKEN_COMMAND (or a prompt) to obtain tokens.
    """
    http_timeout = _env_seconds("AEC_HTTP_TIMEOUT_SECONDS") or 30.0
    if http_timeout < 1:
        http_timeout = 1.0

    token_timeout = _env_seconds("AEC_TOKEN_TIMEOUT_SECONDS")
    if token_timeout is not None and token_timeout <= 0:
        token_timeout = None

    return ClientConfig(
        app_url=_env_str("AEC_APP_URL"),
        account=_env_str("AEC_ACCOUNT"),
        token_command=_env_str("AEC_TOKEN_COMMAND"),
        auth_token=_env_str("AEC_AUTH_TOKEN"),
        http_timeout_seconds=http_timeout,
        token_timeout_seconds=token_timeout,
    )
