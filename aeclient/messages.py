"""Diagnostic and progress strings reported to callers."""

AUTHENTICATION_FAILED = "Authentication failed"
NO_AUTH_TOKEN = "No authentication token"
NO_COOKIE = "No session cookie in login response"
TOKEN_TIMEOUT = "Timed out waiting for authentication token"
FAILED = "failed"

SENDING_REQUEST = "Sending request"
SENT = "Sent"
RECEIVING_RESPONSE = "Receiving response"
RECEIVED = "Received"
BYTES = "bytes"


def sent(count: int) -> str:
    return f"{SENT} {count} {BYTES}"


def received(count: int) -> str:
    return f"{RECEIVED} {count} {BYTES}"


def auth_failed(detail: str) -> str:
    return f"{AUTHENTICATION_FAILED}: {detail}"


def method_failed(method: str, detail: str) -> str:
    return f"{method} {FAILED}: {detail}"
