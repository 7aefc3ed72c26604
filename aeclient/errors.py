from __future__ import annotations

from aeclient.models import Failure


class ClientError(Exception):
    """Base for faults that end up reported to callers as a Failure value."""

    kind = "transport"

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, message=str(self))  # type: ignore[arg-type]


class CredentialError(ClientError):
    """The credential provider could not supply a token."""

    kind = "credential"


class SessionExchangeError(ClientError):
    """Trading the token for a session cookie failed."""

    kind = "session_exchange"


class TransportError(ClientError):
    kind = "transport"


class ProtocolError(ClientError):
    """The backend answered, but not with what the protocol expects."""

    kind = "protocol"
