"""Error-boundary helpers: every handler failure becomes one error envelope."""

from __future__ import annotations

import traceback
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

from rfcbridge.bridge.protocol import Envelope
from rfcbridge.utils.exceptions import (
    ErrorCategory,
    RemoteCallError,
    RfcBridgeError,
    classify_exception,
    error_message,
    sanitize_error_message,
)


def _trace(exc: BaseException, include_trace: bool) -> str | None:
    if not include_trace:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()


def no_command_result(*, request_id: str | None = None) -> Envelope:
    return Envelope.fail("No command specified", code="MISSING_COMMAND", request_id=request_id)


def bridge_error_result(
    *,
    command: str,
    exc: RfcBridgeError,
    include_trace: bool,
    request_id: str | None = None,
) -> Envelope:
    """Map RfcBridgeError to an error envelope keeping its code."""
    logger.warning("Command {} failed with {}: {}", command, exc.code, sanitize_error_message(exc.message))
    return Envelope.fail(exc.message, code=exc.code, trace=_trace(exc, include_trace), request_id=request_id)


def unhandled_exception_result(
    *,
    command: str,
    exc: Exception,
    include_trace: bool,
    request_id: str | None = None,
) -> Envelope:
    """Map unexpected exceptions to an envelope coded by classify_exception."""
    code, category = classify_exception(exc)
    message = error_message(exc)
    if category is ErrorCategory.FATAL:
        logger.exception("Command {} failed with [{}]: {}", command, code, sanitize_error_message(message))
    else:
        logger.warning("Command {} failed with [{}]: {}", command, code, sanitize_error_message(message))
    return Envelope.fail(message, code=code, trace=_trace(exc, include_trace), request_id=request_id)


def exception_result(
    *,
    command: str,
    exc: Exception,
    include_trace: bool,
    request_id: str | None = None,
) -> Envelope:
    if isinstance(exc, RfcBridgeError):
        return bridge_error_result(command=command, exc=exc, include_trace=include_trace, request_id=request_id)
    return unhandled_exception_result(command=command, exc=exc, include_trace=include_trace, request_id=request_id)


@contextmanager
def remote_errors(operation: str) -> Iterator[None]:
    """Re-raise connector failures as RemoteCallError with the message verbatim."""
    try:
        yield
    except RfcBridgeError:
        raise
    except Exception as exc:
        raise RemoteCallError(str(exc) or exc.__class__.__name__, operation=operation) from exc
