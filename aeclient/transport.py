"""Helpers around the `requests` transport shared by login and data requests."""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Sequence

import requests
from urllib3 import HTTPHeaderDict

# One transport connection per request; closing it releases the pooled sockets.
TransportFactory = Callable[[], requests.Session]


def _raw_headers(resp: requests.Response) -> HTTPHeaderDict:
    # requests folds repeated headers into one comma-joined value; urllib3 keeps them apart.
    raw = getattr(resp.raw, "headers", None)
    if isinstance(raw, HTTPHeaderDict):
        return raw
    return HTTPHeaderDict(resp.headers)


def header_values(resp: requests.Response, name: str) -> List[str]:
    return list(_raw_headers(resp).getlist(name))


def header_multimap(resp: requests.Response) -> Dict[str, List[str]]:
    headers = _raw_headers(resp)
    return {name: list(headers.getlist(name)) for name in headers}


def flatten_headers(headers: Optional[Mapping[str, Sequence[str]]]) -> Dict[str, str]:
    """
    Turn a header multimap into what requests can send.

    Repeated values become one comma-separated field, in their given order.
    """
    flat: Dict[str, str] = {}
    for name, values in (headers or {}).items():
        if isinstance(values, str):
            values = [values]
        if not values:
            continue
        flat[name] = ", ".join(values)
    return flat
