"""Serialization helpers for command payloads and envelope lines."""

from __future__ import annotations

import json
from typing import Any

from .protocol import CallRequest, CommandRequest, Envelope
from rfcbridge.utils.exceptions import MissingFieldError, PayloadError


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def encode_envelope_line(envelope: Envelope) -> str:
    """Encode an envelope into one line of JSON."""
    return json.dumps(envelope.to_dict(), ensure_ascii=False, default=str)


def encode_request_line(request: CommandRequest) -> str:
    """Encode a service request frame into one line of JSON."""
    return json.dumps(
        {"id": request.id, "command": request.command, "payload": request.payload},
        ensure_ascii=False,
        default=str,
    )


def find_envelope_line(output: str) -> str | None:
    """Locate the envelope among diagnostic output: the first line starting with '{'."""
    for line in (output or "").split("\n"):
        text = line.strip()
        if text.startswith("{"):
            return text
    return None


def decode_envelope(payload: Any) -> Envelope:
    """Decode a raw dict payload into a normalized Envelope."""
    row = safe_dict(payload)
    req_id = row.get("id")
    req_id = str(req_id) if req_id is not None else None
    if bool(row.get("success")):
        return Envelope.ok(row.get("data"), request_id=req_id)
    trace = row.get("trace")
    code = row.get("code")
    return Envelope.fail(
        str(row.get("error") or "command failed"),
        code=str(code) if code else None,
        trace=str(trace) if trace else None,
        request_id=req_id,
    )


def parse_payload(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Parse a command payload; absent or blank means an empty object."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise PayloadError(f"Payload must be a JSON object, got {type(raw).__name__}")
    text = raw.strip()
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"Invalid JSON payload: {exc.msg} (line {exc.lineno} column {exc.colno})") from exc
    if not isinstance(value, dict):
        raise PayloadError(f"Payload must be a JSON object, got {type(value).__name__}")
    return value


def parse_flag(value: Any) -> bool:
    """Interpret JSON true or the string "true" (any case) as set."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def require_function_name(payload: dict[str, Any]) -> str:
    name = payload.get("function")
    if not isinstance(name, str) or not name.strip():
        raise MissingFieldError("function", "No function name")
    return name.strip()


def _mapping(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"{key} must be a JSON object")
    return value


def _name_list(payload: dict[str, Any], key: str) -> list[str] | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise PayloadError(f"{key} must be a list of names")
    return list(value)


def parse_call_request(payload: dict[str, Any]) -> CallRequest:
    """Validate an ``invokecomplex`` payload into a CallRequest."""
    structures: dict[str, dict[str, Any]] = {}
    for name, fields in _mapping(payload, "importStructures").items():
        if not isinstance(fields, dict):
            raise PayloadError(f"importStructures.{name} must be a JSON object")
        structures[name] = fields
    tables: dict[str, list[dict[str, Any]]] = {}
    for name, rows in _mapping(payload, "importTables").items():
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise PayloadError(f"importTables.{name} must be a list of row objects")
        tables[name] = rows
    return CallRequest(
        function=require_function_name(payload),
        import_params=_mapping(payload, "importParams"),
        import_structures=structures,
        import_tables=tables,
        export_params=_name_list(payload, "exportParams"),
        structures=_name_list(payload, "structures"),
        tables=_name_list(payload, "tables"),
        end_context=parse_flag(payload.get("endContext")),
        diagnostics=parse_flag(payload.get("diagnostics")),
    )


def parse_command_line(line: str) -> CommandRequest:
    """
    Parse one line from the service channel.

    Accepts a JSON frame ``{"id", "command", "payload"}`` or an argv-style
    line ``<command> <json>``.
    """
    text = line.strip()
    if text.startswith("{"):
        try:
            frame = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"Invalid request line: {exc.msg}") from exc
        if not isinstance(frame, dict):
            raise PayloadError("Request line must be a JSON object")
        req_id = frame.get("id")
        return CommandRequest(
            command=str(frame.get("command") or ""),
            payload=frame.get("payload"),
            id=str(req_id) if req_id is not None else None,
        )
    command, _, rest = text.partition(" ")
    return CommandRequest(command=command, payload=rest)
