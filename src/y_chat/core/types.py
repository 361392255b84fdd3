"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class McpStatus(StrEnum):
    PENDING = "pending"
    CONNECTED = "connected"
    FAILED = "failed"


class AuthType(StrEnum):
    API_KEY = "api_key"
    OAUTH = "oauth"


class StatusKind(StrEnum):
    """Kinds of connection-progress events sent to the output stream."""

    INFO = "info"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ErrorType(StrEnum):
    AUTH = "auth_error"
    CREDITS = "credits_error"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout_error"
    PROVIDER = "provider_error"
    UNKNOWN = "unknown_error"
    EMPTY_RESPONSE = "empty_response"
