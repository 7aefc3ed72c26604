"""Value objects exchanged with callers.

Requests, responses and failures are immutable once built. Header multimaps keep
every value of a repeated header in the order it was given or received.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Headers = Dict[str, List[str]]


class BaseModelFrozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Request(BaseModelFrozen):
    method: Literal["GET", "POST"]
    uri: str
    headers: Headers = Field(default_factory=dict)
    body: Optional[bytes] = None

    @field_validator("headers", mode="before")
    @classmethod
    def _none_means_no_headers(cls, v):  # type: ignore[no-untyped-def]
        return {} if v is None else v

    @model_validator(mode="after")
    def _body_iff_post(self) -> "Request":
        if self.method == "POST" and self.body is None:
            raise ValueError("POST requests require a body")
        if self.method == "GET" and self.body is not None:
            raise ValueError("GET requests cannot carry a body")
        return self

    @classmethod
    def get(cls, uri: str, headers: Optional[Headers] = None) -> "Request":
        return cls(method="GET", uri=uri, headers=headers)

    @classmethod
    def post(cls, uri: str, headers: Optional[Headers], body: bytes) -> "Request":
        return cls(method="POST", uri=uri, headers=headers, body=body)


class Response(BaseModelFrozen):
    """Status, headers and body of a completed exchange, exactly as received."""

    status: int
    headers: Headers = Field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Failure(BaseModelFrozen):
    kind: Literal["credential", "session_exchange", "transport", "protocol"]
    message: str


Outcome = Union[Response, Failure]
