from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

# Local-network development backends perform no real authentication.
TEST_HOST_PREFIX = "192.168"
TEST_COOKIE = "Testing=TRUE"
TEST_TOKEN = "whatever"

LOGIN_PATH = "_ah/login"
LOGIN_CONTINUE = "http://localhost/"


def is_test_mode(app_url: str) -> bool:
    host = urlsplit(app_url).hostname or ""
    return host.startswith(TEST_HOST_PREFIX)


def session_cookie_name(app_url: str) -> str:
    return "SACSID" if urlsplit(app_url).scheme.lower() == "https" else "ACSID"


def login_url(app_url: str, token: str) -> str:
    """
    Build the login-exchange URL for an app.

    The exchange always goes over TLS, whatever scheme the app URL uses:
    `http://app.example.com/api` -> `https://app.example.com/api/_ah/login?...`.
    """
    parts = urlsplit(app_url)
    path = parts.path or "/"
    if not path.endswith("/"):
        path += "/"
    root = urlunsplit(("https", parts.netloc, path, "", ""))
    return f"{root}{LOGIN_PATH}?continue={LOGIN_CONTINUE}&auth={token}"


def extract_session_cookie(set_cookie_values: Iterable[str], name: str) -> Optional[str]:
    """
    Return `name=value` from the first Set-Cookie value starting with `name`.

    Attributes such as `Path=/` or `Expires=...` are dropped.
    """
    for value in set_cookie_values:
        if value.startswith(name):
            return value.split(";", 1)[0]
    return None
