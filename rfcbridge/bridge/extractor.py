"""Read typed outputs back into JSON-compatible mappings of strings.

Field lists come from the remote metadata, not from the caller, and every
read falls back to an empty string so one bad field never costs a whole row,
structure or table.
"""

from __future__ import annotations

from loguru import logger

from rfcbridge.bridge.marshaler import require_declared
from rfcbridge.bridge.protocol import CallRequest, CallResult, FieldDiagnostic
from rfcbridge.remote.contracts import FunctionHandle, ParameterKind, RecordHandle
from rfcbridge.utils.exceptions import error_message


def _defaulted(
    diagnostics: list[FieldDiagnostic],
    scope: str,
    container: str,
    field: str | None,
    exc: Exception,
    row: int | None = None,
) -> None:
    reason = error_message(exc)
    diagnostics.append(FieldDiagnostic(scope=scope, container=container, field=field, status="defaulted", reason=reason, row=row))
    logger.debug("Defaulted unreadable {} {} field {}: {}", scope, container, field or "-", reason)


def read_record(
    record: RecordHandle,
    fields: list[str],
    diagnostics: list[FieldDiagnostic],
    *,
    scope: str,
    container: str,
    row: int | None = None,
) -> dict[str, str]:
    out: dict[str, str] = {}
    for field in fields:
        try:
            out[field] = record.get_string(field) or ""
        except Exception as exc:
            out[field] = ""
            _defaulted(diagnostics, scope, container, field, exc, row)
    return out


def read_exports(function: FunctionHandle, names: list[str], diagnostics: list[FieldDiagnostic]) -> dict[str, str]:
    exports: dict[str, str] = {}
    for name in names:
        try:
            exports[name] = function.get_string(name) or ""
        except Exception as exc:
            exports[name] = ""
            _defaulted(diagnostics, "export", name, None, exc)
    return exports


def read_structures(
    function: FunctionHandle,
    names: list[str],
    diagnostics: list[FieldDiagnostic],
) -> dict[str, dict[str, str]]:
    structures: dict[str, dict[str, str]] = {}
    for name in names:
        meta = require_declared(function, name, ParameterKind.STRUCTURE)
        try:
            record = function.get_structure(meta.name)
            fields = record.field_names()
        except Exception as exc:
            structures[name] = {}
            _defaulted(diagnostics, "structure", name, None, exc)
            continue
        structures[name] = read_record(record, fields, diagnostics, scope="structure", container=name)
    return structures


def read_tables(
    function: FunctionHandle,
    names: list[str],
    diagnostics: list[FieldDiagnostic],
) -> dict[str, list[dict[str, str]]]:
    tables: dict[str, list[dict[str, str]]] = {}
    for name in names:
        meta = require_declared(function, name, ParameterKind.TABLE)
        rows: list[dict[str, str]] = []
        try:
            table = function.get_table(meta.name)
            fields = table.field_names()
            for index in range(table.row_count()):
                record = table.row(index)
                rows.append(read_record(record, fields, diagnostics, scope="table", container=name, row=index))
        except Exception as exc:
            _defaulted(diagnostics, "table", name, None, exc, len(rows))
        tables[name] = rows
    return tables


def extract_results(
    function: FunctionHandle,
    request: CallRequest,
    diagnostics: list[FieldDiagnostic] | None = None,
) -> CallResult:
    """Collect the exports, structures and tables the request asked for."""
    result = CallResult(diagnostics=diagnostics if diagnostics is not None else [])
    if request.export_params is not None:
        result.exports = read_exports(function, request.export_params, result.diagnostics)
    if request.structures is not None:
        result.structures = read_structures(function, request.structures, result.diagnostics)
    if request.tables is not None:
        result.tables = read_tables(function, request.tables, result.diagnostics)
    return result


def extract_output_parameters(function: FunctionHandle) -> dict[str, str]:
    """Every EXPORT and CHANGING parameter as text, for the simple invoke path."""
    out: dict[str, str] = {}
    for meta in function.parameters():
        if not meta.direction.is_output:
            continue
        try:
            out[meta.name] = function.get_string(meta.name) or ""
        except Exception as exc:
            out[meta.name] = ""
            logger.debug("Defaulted unreadable output {}.{}: {}", function.name, meta.name, exc)
    return out
