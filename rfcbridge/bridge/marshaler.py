"""Populate a function handle's typed inputs from JSON values."""

from __future__ import annotations

from typing import Any

from loguru import logger

from rfcbridge.bridge.protocol import CallRequest, FieldDiagnostic
from rfcbridge.remote.contracts import (
    FunctionHandle,
    ParameterDirection,
    ParameterKind,
    ParameterMeta,
    RecordHandle,
    TableHandle,
    find_parameter,
)
from rfcbridge.utils.exceptions import UnknownParameterError, error_message


def _skipped(
    diagnostics: list[FieldDiagnostic],
    scope: str,
    container: str,
    field: str | None,
    exc: Exception,
    row: int | None = None,
) -> None:
    reason = error_message(exc)
    diagnostics.append(FieldDiagnostic(scope=scope, container=container, field=field, status="skipped", reason=reason, row=row))
    where = f"{container}[{row}].{field}" if row is not None else f"{container}.{field}" if field else container
    logger.warning("Skipped {} value {}: {}", scope, where, reason)


def require_declared(function: FunctionHandle, name: str, kind: ParameterKind) -> ParameterMeta:
    """Metadata for a structure or table; undeclared names fail the whole call."""
    meta = find_parameter(function, name)
    if meta is None or meta.kind is not kind:
        raise UnknownParameterError(function.name, name, kind.value)
    return meta


def resolve_structure(function: FunctionHandle, name: str) -> RecordHandle:
    return function.get_structure(require_declared(function, name, ParameterKind.STRUCTURE).name)


def resolve_table(function: FunctionHandle, name: str) -> TableHandle:
    return function.get_table(require_declared(function, name, ParameterKind.TABLE).name)


def set_scalars(
    function: FunctionHandle,
    values: dict[str, Any],
    diagnostics: list[FieldDiagnostic] | None = None,
) -> None:
    """
    Set import scalars by name.

    Without a diagnostics list every failure propagates; with one, failures
    are recorded and marshaling continues.
    """
    for name, value in values.items():
        if diagnostics is None:
            function.set_value(name, value)
            continue
        try:
            function.set_value(name, value)
        except Exception as exc:
            _skipped(diagnostics, "import", name, None, exc)


def fill_record(
    record: RecordHandle,
    fields: dict[str, Any],
    diagnostics: list[FieldDiagnostic],
    *,
    scope: str,
    container: str,
    row: int | None = None,
) -> None:
    for field, value in fields.items():
        try:
            record.set_value(field, value)
        except Exception as exc:
            _skipped(diagnostics, scope, container, field, exc, row)


def populate_imports(function: FunctionHandle, request: CallRequest) -> list[FieldDiagnostic]:
    """Marshal scalars, then structures, then table rows in input order."""
    diagnostics: list[FieldDiagnostic] = []
    set_scalars(function, request.import_params, diagnostics)

    for struct_name, fields in request.import_structures.items():
        record = resolve_structure(function, struct_name)
        fill_record(record, fields, diagnostics, scope="structure", container=struct_name)

    for table_name, rows in request.import_tables.items():
        table = resolve_table(function, table_name)
        for index, row in enumerate(rows):
            record = table.append()
            fill_record(record, row, diagnostics, scope="table", container=table_name, row=index)
        logger.debug("Appended {} rows to {}.{}", len(rows), function.name, table_name)

    return diagnostics


def missing_mandatory_imports(function: FunctionHandle, request: CallRequest) -> list[FieldDiagnostic]:
    """Declared non-optional IMPORT parameters the request does not supply."""
    supplied = {
        name.upper()
        for group in (request.import_params, request.import_structures, request.import_tables)
        for name in group
    }
    diagnostics: list[FieldDiagnostic] = []
    for meta in function.parameters():
        if meta.direction is not ParameterDirection.IMPORT or meta.optional or meta.name.upper() in supplied:
            continue
        diagnostics.append(
            FieldDiagnostic(
                scope="import",
                container=meta.name,
                field=None,
                status="missing",
                reason=f"mandatory {meta.kind.value} import not supplied",
            )
        )
        logger.warning("Call {} omits mandatory import {}", function.name, meta.name)
    return diagnostics
