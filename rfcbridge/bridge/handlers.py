"""Command handlers: one function per bridge command.

Every handler takes the shared ``HandlerContext`` and the parsed payload and
returns the envelope's ``data``. Failures are raised and converted to error
envelopes by the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from rfcbridge.bridge.error_boundary import remote_errors
from rfcbridge.bridge.extractor import extract_output_parameters, extract_results
from rfcbridge.bridge.lifecycle import end_context_if_requested
from rfcbridge.bridge.marshaler import missing_mandatory_imports, populate_imports, set_scalars
from rfcbridge.bridge.registry import DestinationRegistry
from rfcbridge.bridge.serialization import parse_call_request, parse_payload, require_function_name
from rfcbridge.config.schema import BridgeSettings, build_destination_config
from rfcbridge.remote.contracts import DependencyReport
from rfcbridge.utils.exceptions import DependencyError, PayloadError


@dataclass(slots=True)
class HandlerContext:
    """State shared by all handlers for the lifetime of a dispatcher."""

    settings: BridgeSettings
    registry: DestinationRegistry


CommandHandler = Callable[[HandlerContext, dict[str, Any]], Any]


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "Invalid connect payload: " + "; ".join(parts)


def handle_connect(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        config = build_destination_config(payload, ctx.settings.defaults)
    except ValidationError as exc:
        raise PayloadError(_validation_message(exc)) from exc
    logger.debug("connect {}", config.redacted())
    with remote_errors("connect"):
        attributes = ctx.registry.register(config)
    return {
        "connected": True,
        "systemId": attributes.system_id,
        "client": attributes.client,
        "release": attributes.release,
    }


def handle_ping(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    with remote_errors("ping"):
        ctx.registry.ping()
    return {"alive": True}


def handle_sync(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    return {"sync": True, "message": "successfully sync"}


def dependency_failure_message(report: DependencyReport) -> str:
    lines = [
        f"Missing {report.connector} connector dependencies:",
        "",
        f"Missing: {', '.join(report.missing)}",
    ]
    if report.suggestions:
        lines.append("")
        lines.extend(f"- {item}" for item in report.suggestions)
    return "\n".join(lines)


def handle_checkdlls(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    report = ctx.registry.connector.check_dependencies()
    if not report.ok:
        raise DependencyError(dependency_failure_message(report), missing=report.missing)
    return {"dlls_found": True, "message": f"All {report.connector} connector dependencies found"}


def handle_invoke(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, str]:
    """Simple call: import scalars in, every export/changing parameter out."""
    name = require_function_name(payload)
    params = payload.get("params")
    params = parse_payload(params) if params is not None else {}
    destination = ctx.registry.require()
    with remote_errors("invoke"):
        function = destination.create_function(name)
        set_scalars(function, params)
        destination.invoke(function)
    logger.info("Invoked {} with {} parameters", name, len(params))
    return extract_output_parameters(function)


def handle_invokecomplex(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    """Marshal scalars, structures and tables; extract what was asked for."""
    request = parse_call_request(payload)
    destination = ctx.registry.require()
    with remote_errors("invokecomplex"):
        function = destination.create_function(request.function)
        diagnostics = missing_mandatory_imports(function, request)
        diagnostics += populate_imports(function, request)
        destination.invoke(function)
    result = extract_results(function, request, diagnostics)
    with remote_errors("endContext"):
        end_context_if_requested(destination, request.end_context)
    if result.diagnostics:
        logger.info("Call {} finished with {} field diagnostics", request.function, len(result.diagnostics))
    return result.to_data(include_diagnostics=request.diagnostics)


def handle_close(ctx: HandlerContext, payload: dict[str, Any]) -> dict[str, Any]:
    ctx.registry.unregister()
    return {"closed": True}


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "connect": handle_connect,
    "ping": handle_ping,
    "sync": handle_sync,
    "checkdlls": handle_checkdlls,
    "invoke": handle_invoke,
    "invokecomplex": handle_invokecomplex,
    "close": handle_close,
}

REQUIRES_DESTINATION = frozenset({"ping", "invoke", "invokecomplex"})
