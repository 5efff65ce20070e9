"""Command and envelope models shared by the dispatcher, service and client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class FieldDiagnostic:
    """One field that was skipped or missing while marshaling, or defaulted while extracting."""

    scope: str
    container: str
    field: str | None
    status: str
    reason: str
    row: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "scope": self.scope,
            "container": self.container,
            "field": self.field,
            "status": self.status,
            "reason": self.reason,
        }
        if self.row is not None:
            out["row"] = self.row
        return out


@dataclass(slots=True)
class CallRequest:
    """Parsed ``invokecomplex`` payload."""

    function: str
    import_params: dict[str, Any] = field(default_factory=dict)
    import_structures: dict[str, dict[str, Any]] = field(default_factory=dict)
    import_tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    export_params: list[str] | None = None
    structures: list[str] | None = None
    tables: list[str] | None = None
    end_context: bool = False
    diagnostics: bool = False


@dataclass(slots=True)
class CallResult:
    """Extracted outputs of one call, every value rendered as text."""

    exports: dict[str, str] | None = None
    structures: dict[str, dict[str, str]] | None = None
    tables: dict[str, list[dict[str, str]]] | None = None
    diagnostics: list[FieldDiagnostic] = field(default_factory=list)

    def to_data(self, *, include_diagnostics: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.exports is not None:
            data["exports"] = self.exports
        if self.structures is not None:
            data["structures"] = self.structures
        if self.tables is not None:
            data["tables"] = self.tables
        if include_diagnostics:
            data["diagnostics"] = [item.to_dict() for item in self.diagnostics]
        return data


@dataclass(slots=True)
class Envelope:
    """Uniform success/error wrapper written once per command."""

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    trace: str | None = None
    id: str | None = None

    @classmethod
    def ok(cls, data: Any, *, request_id: str | None = None) -> "Envelope":
        return cls(success=True, data=data, id=request_id)

    @classmethod
    def fail(
        cls,
        error: str,
        *,
        code: str | None = None,
        trace: str | None = None,
        request_id: str | None = None,
    ) -> "Envelope":
        return cls(success=False, error=error, code=code, trace=trace, id=request_id)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.id is not None:
            out["id"] = self.id
        out["success"] = self.success
        if self.success:
            out["data"] = self.data
            return out
        out["error"] = self.error or "command failed"
        if self.code:
            out["code"] = self.code
        if self.trace:
            out["trace"] = self.trace
        return out


@dataclass(slots=True)
class CommandRequest:
    """One command read from the service channel."""

    command: str
    payload: str | dict[str, Any] | None = None
    id: str | None = None
