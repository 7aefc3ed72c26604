"""
Authenticated REST client for App Engine style backends.

A platform identity token is traded once for a session cookie, which then rides on
every GET/POST. Requests run either inline (blocking) or on a background thread with
progress callbacks delivered to the launching event loop.
"""

from aeclient.auth.session import Session, SessionManager, SessionState
from aeclient.client import AsyncDispatcher, EngineClient, RequestCallback, RequestExecutor
from aeclient.models import Failure, Request, Response

__all__ = [
    "AsyncDispatcher",
    "EngineClient",
    "Failure",
    "Request",
    "RequestCallback",
    "RequestExecutor",
    "Response",
    "Session",
    "SessionManager",
    "SessionState",
]
