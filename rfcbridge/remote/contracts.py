"""Runtime contracts for remote function-call connectors.

The marshaling layer only talks to these protocols; concrete connectors
(pyrfc, in-memory) adapt a real SDK or a local catalog behind them.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from rfcbridge.config.schema import DestinationConfig


class ParameterDirection(Enum):
    """Direction of a procedure parameter, fixed by its metadata."""

    IMPORT = "import"
    EXPORT = "export"
    CHANGING = "changing"
    TABLES = "tables"

    @property
    def is_output(self) -> bool:
        return self in (ParameterDirection.EXPORT, ParameterDirection.CHANGING)


class ParameterKind(Enum):
    """Shape of a parameter value."""

    SCALAR = "scalar"
    STRUCTURE = "structure"
    TABLE = "table"


@dataclass(slots=True, frozen=True)
class ParameterMeta:
    """One parameter declared by a procedure."""

    name: str
    direction: ParameterDirection
    kind: ParameterKind = ParameterKind.SCALAR
    fields: tuple[str, ...] = ()
    optional: bool = False


@dataclass(slots=True)
class SystemAttributes:
    """Identity of the remote system observed after a successful ping."""

    system_id: str
    client: str
    release: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DependencyReport:
    """Connector dependency checks, shaped like a requirements report."""

    connector: str
    checks: dict[str, bool] = field(default_factory=dict)
    paths: dict[str, str] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


@runtime_checkable
class RecordHandle(Protocol):
    """A structure or the current row of a table."""

    def field_names(self) -> list[str]: ...
    def set_value(self, name: str, value: Any) -> None: ...
    def get_string(self, name: str) -> str: ...


@runtime_checkable
class TableHandle(Protocol):
    """An ordered, appendable sequence of records."""

    def field_names(self) -> list[str]: ...
    def append(self) -> RecordHandle: ...
    def row_count(self) -> int: ...
    def row(self, index: int) -> RecordHandle: ...


@runtime_checkable
class FunctionHandle(Protocol):
    """A procedure resolved by name, with its parameter metadata."""

    name: str

    def parameters(self) -> list[ParameterMeta]: ...
    def set_value(self, name: str, value: Any) -> None: ...
    def get_string(self, name: str) -> str: ...
    def get_structure(self, name: str) -> RecordHandle: ...
    def get_table(self, name: str) -> TableHandle: ...


@runtime_checkable
class RemoteDestination(Protocol):
    """A live, configured connection target."""

    def ping(self) -> None: ...
    def system_attributes(self) -> SystemAttributes: ...
    def create_function(self, name: str) -> FunctionHandle: ...
    def invoke(self, function: FunctionHandle) -> None: ...
    def end_context(self) -> None: ...
    def close(self) -> None: ...


@runtime_checkable
class RemoteConnector(Protocol):
    """Factory for destinations plus a dependency probe."""

    name: str

    def open(self, config: DestinationConfig) -> RemoteDestination: ...
    def check_dependencies(self) -> DependencyReport: ...


def as_text(value: Any) -> str:
    """Render a remote value in the remote system's native textual form."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex().upper()
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, datetime.date):
        return value.strftime("%Y%m%d")
    if isinstance(value, datetime.time):
        return value.strftime("%H%M%S")
    return str(value)


def find_parameter(function: FunctionHandle, name: str) -> ParameterMeta | None:
    """Look up a declared parameter by name; falls back to the upper-cased name."""
    declared = {meta.name: meta for meta in function.parameters()}
    return declared.get(name) or declared.get(name.upper())
