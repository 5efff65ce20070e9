"""
Exception hierarchy and error handling utilities for rfcbridge.

Provides:
- Custom exception classes with error codes
- Error categorization (protocol, state, remote, dependency)
- Safe error message formatting (no credential leak into logs)
- Classification of remote connector messages for callers
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    PROTOCOL = "protocol"
    STATE = "state"
    REMOTE = "remote"
    DEPENDENCY = "dependency"
    FATAL = "fatal"


class RemoteFailureKind(Enum):
    """Caller-facing classification of remote connector failures."""
    LOGON = "logon"
    COMMUNICATION = "communication"
    FUNCTION_NOT_FOUND = "function_not_found"
    ABAP = "abap"
    OTHER = "other"


class RfcBridgeError(Exception):
    """Base exception for all rfcbridge errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class UnknownCommandError(RfcBridgeError):
    """Command token not understood by the dispatcher."""

    def __init__(self, command: str):
        super().__init__(
            f"Unknown command: {command}",
            code="UNKNOWN_COMMAND",
            category=ErrorCategory.PROTOCOL,
            details={"command": command},
        )


class PayloadError(RfcBridgeError):
    """Command payload is not a JSON object."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_PAYLOAD", category=ErrorCategory.PROTOCOL)


class MissingFieldError(RfcBridgeError):
    """Required payload field missing or empty."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(
            message or f"Missing required field: {field}",
            code="MISSING_FIELD",
            category=ErrorCategory.PROTOCOL,
            details={"field": field},
        )


class NotConnectedError(RfcBridgeError):
    """Operation needs a registered destination."""

    def __init__(self, message: str = "Not connected. Call connect() first."):
        super().__init__(message, code="NOT_CONNECTED", category=ErrorCategory.STATE)


class RemoteCallError(RfcBridgeError):
    """Failure reported by the remote connector, message kept verbatim."""

    def __init__(self, message: str, operation: str | None = None):
        details = {"operation": operation} if operation else {}
        details["kind"] = classify_remote_error(message).value
        super().__init__(message, code="REMOTE_ERROR", category=ErrorCategory.REMOTE, details=details)


class UnknownParameterError(RfcBridgeError):
    """Structure or table name not declared by the procedure metadata."""

    def __init__(self, function: str, parameter: str, kind: str):
        super().__init__(
            f"{kind.capitalize()} '{parameter}' is not declared by function {function}",
            code="UNKNOWN_PARAMETER",
            category=ErrorCategory.REMOTE,
            details={"function": function, "parameter": parameter, "kind": kind},
        )


class DependencyError(RfcBridgeError):
    """Remote connector dependencies are not installed."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(
            message,
            code="DEPENDENCY_MISSING",
            category=ErrorCategory.DEPENDENCY,
            details={"missing": list(missing or [])},
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(passwd|password|pwd|token|secret)(['\"]?\s*[=:]\s*)['\"]?([^\s'\",}]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove credentials from messages before they reach a log sink."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        if pattern.groups >= 3:
            sanitized = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{replacement}", sanitized)
        else:
            sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_remote_error(message: str) -> RemoteFailureKind:
    """Map connector error text to a caller-facing failure kind."""
    text = (message or "").upper()
    if "LOGON_FAILURE" in text or "LOGONERROR" in text or "NAME OR PASSWORD IS INCORRECT" in text:
        return RemoteFailureKind.LOGON
    if "COMMUNICATION_FAILURE" in text or "COMMUNICATIONERROR" in text or "PARTNER NOT REACHED" in text:
        return RemoteFailureKind.COMMUNICATION
    if "FU_NOT_FOUND" in text or "FUNCTION_NOT_FOUND" in text or ("NOT_FOUND" in text and "FUNCTION" in text):
        return RemoteFailureKind.FUNCTION_NOT_FOUND
    if "ABAP_EXCEPTION" in text or "ABAP_RUNTIME_FAILURE" in text or "ABAPAPPLICATIONERROR" in text:
        return RemoteFailureKind.ABAP
    return RemoteFailureKind.OTHER


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory]:
    """
    Classify an exception raised inside a command handler.

    Returns:
        Tuple of (error_code, category)
    """
    if isinstance(exc, RfcBridgeError):
        return exc.code, exc.category

    if isinstance(exc, json.JSONDecodeError):
        return "INVALID_PAYLOAD", ErrorCategory.PROTOCOL

    if isinstance(exc, KeyError):
        return "MISSING_FIELD", ErrorCategory.PROTOCOL

    if isinstance(exc, (ValueError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.PROTOCOL

    if isinstance(exc, (FileNotFoundError, ImportError)):
        return "DEPENDENCY_MISSING", ErrorCategory.DEPENDENCY

    if classify_remote_error(str(exc)) is not RemoteFailureKind.OTHER:
        return "REMOTE_ERROR", ErrorCategory.REMOTE

    return "INTERNAL_ERROR", ErrorCategory.FATAL


def error_message(exc: BaseException) -> str:
    """Message text for an envelope: bare message for bridge errors, str() otherwise."""
    if isinstance(exc, RfcBridgeError):
        return exc.message
    if isinstance(exc, KeyError) and exc.args:
        return f"Missing required field: {exc.args[0]}"
    text = str(exc)
    return text or exc.__class__.__name__
