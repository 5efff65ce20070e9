"""In-process connector backed by a catalog of Python-implemented procedures."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from loguru import logger

from rfcbridge.config.schema import DestinationConfig
from rfcbridge.remote.contracts import (
    DependencyReport,
    FunctionHandle,
    ParameterDirection,
    ParameterKind,
    ParameterMeta,
    SystemAttributes,
    as_text,
)

ProcedureImpl = Callable[[dict[str, Any]], dict[str, Any] | None]


class MemoryRemoteError(Exception):
    """Error raised by the in-memory remote, worded like connector errors."""


@dataclass(slots=True)
class ProcedureDefinition:
    """A catalog entry: metadata plus the callable that runs it."""

    name: str
    parameters: list[ParameterMeta] = field(default_factory=list)
    implementation: ProcedureImpl | None = None


class MemoryRecord:
    """Structure or table row with a fixed field list."""

    def __init__(self, owner: str, fields: Iterable[str], values: dict[str, Any] | None = None):
        self._owner = owner
        self._fields = tuple(fields)
        self.values: dict[str, Any] = {}
        for key, value in (values or {}).items():
            if key in self._fields:
                self.values[key] = value

    def _check(self, name: str) -> None:
        if name not in self._fields:
            raise MemoryRemoteError(f"FIELD_NOT_FOUND: field {name} does not exist in {self._owner}")

    def field_names(self) -> list[str]:
        return list(self._fields)

    def set_value(self, name: str, value: Any) -> None:
        self._check(name)
        if isinstance(value, (dict, list)):
            raise MemoryRemoteError(f"CONVERSION_ERROR: field {name} of {self._owner} expects a scalar")
        self.values[name] = value

    def get_string(self, name: str) -> str:
        self._check(name)
        return as_text(self.values.get(name))

    def as_dict(self) -> dict[str, Any]:
        return {name: self.values.get(name) for name in self._fields}


class MemoryTable:
    """Append-only list of MemoryRecord rows."""

    def __init__(self, owner: str, fields: Iterable[str]):
        self._owner = owner
        self._fields = tuple(fields)
        self.rows: list[MemoryRecord] = []

    def field_names(self) -> list[str]:
        return list(self._fields)

    def append(self, values: dict[str, Any] | None = None) -> MemoryRecord:
        record = MemoryRecord(self._owner, self._fields, values)
        self.rows.append(record)
        return record

    def row_count(self) -> int:
        return len(self.rows)

    def row(self, index: int) -> MemoryRecord:
        if index < 0 or index >= len(self.rows):
            raise MemoryRemoteError(f"INDEX_OUT_OF_RANGE: row {index} of {self._owner}")
        return self.rows[index]

    def as_list(self) -> list[dict[str, Any]]:
        return [row.as_dict() for row in self.rows]


class MemoryFunction:
    """Function handle holding staged parameter values for one call."""

    def __init__(self, definition: ProcedureDefinition):
        self.name = definition.name
        self.definition = definition
        self._meta = {meta.name: meta for meta in definition.parameters}
        self._scalars: dict[str, Any] = {}
        self._structures: dict[str, MemoryRecord] = {}
        self._tables: dict[str, MemoryTable] = {}
        for meta in definition.parameters:
            if meta.kind is ParameterKind.STRUCTURE:
                self._structures[meta.name] = MemoryRecord(meta.name, meta.fields)
            elif meta.kind is ParameterKind.TABLE:
                self._tables[meta.name] = MemoryTable(meta.name, meta.fields)

    def _lookup(self, name: str) -> ParameterMeta:
        meta = self._meta.get(name)
        if meta is None:
            raise MemoryRemoteError(f"PARAMETER_NOT_FOUND: parameter {name} does not exist in function {self.name}")
        return meta

    def parameters(self) -> list[ParameterMeta]:
        return list(self.definition.parameters)

    def set_value(self, name: str, value: Any) -> None:
        meta = self._lookup(name)
        if meta.kind is ParameterKind.STRUCTURE:
            if not isinstance(value, dict):
                raise MemoryRemoteError(f"CONVERSION_ERROR: parameter {name} expects a structure")
            record = self._structures[name]
            for key, item in value.items():
                record.set_value(key, item)
            return
        if meta.kind is ParameterKind.TABLE:
            if not isinstance(value, list):
                raise MemoryRemoteError(f"CONVERSION_ERROR: parameter {name} expects a table")
            table = self._tables[name]
            for row in value:
                table.append(row if isinstance(row, dict) else None)
            return
        if isinstance(value, (dict, list)):
            raise MemoryRemoteError(f"CONVERSION_ERROR: parameter {name} expects a scalar")
        self._scalars[name] = value

    def get_string(self, name: str) -> str:
        meta = self._lookup(name)
        if meta.kind is ParameterKind.STRUCTURE:
            return as_text(self._structures[name].as_dict())
        if meta.kind is ParameterKind.TABLE:
            return as_text(self._tables[name].as_list())
        return as_text(self._scalars.get(name))

    def get_structure(self, name: str) -> MemoryRecord:
        meta = self._lookup(name)
        if meta.kind is not ParameterKind.STRUCTURE:
            raise MemoryRemoteError(f"TYPE_MISMATCH: parameter {name} is not a structure")
        return self._structures[name]

    def get_table(self, name: str) -> MemoryTable:
        meta = self._lookup(name)
        if meta.kind is not ParameterKind.TABLE:
            raise MemoryRemoteError(f"TYPE_MISMATCH: parameter {name} is not a table")
        return self._tables[name]

    def snapshot(self) -> dict[str, Any]:
        """Plain-data view of every parameter, handed to the implementation."""
        values: dict[str, Any] = {}
        for meta in self.definition.parameters:
            if meta.kind is ParameterKind.STRUCTURE:
                values[meta.name] = self._structures[meta.name].as_dict()
            elif meta.kind is ParameterKind.TABLE:
                values[meta.name] = self._tables[meta.name].as_list()
            else:
                values[meta.name] = self._scalars.get(meta.name)
        return copy.deepcopy(values)

    def apply(self, outputs: dict[str, Any]) -> None:
        """Write implementation outputs back into the handle."""
        for name, value in outputs.items():
            meta = self._lookup(name)
            if meta.kind is ParameterKind.STRUCTURE:
                self._structures[name] = MemoryRecord(name, meta.fields, value if isinstance(value, dict) else {})
            elif meta.kind is ParameterKind.TABLE:
                table = MemoryTable(name, meta.fields)
                for row in value or []:
                    table.append(row if isinstance(row, dict) else None)
                self._tables[name] = table
            else:
                self._scalars[name] = value


class MemoryDestination:
    """Destination bound to an InMemoryConnector catalog."""

    def __init__(self, connector: "InMemoryConnector", config: DestinationConfig):
        self.connector = connector
        self.config = config
        self.closed = False
        self.context_open = False
        self.context_ends = 0
        self.invocations: list[str] = []

    def _ensure_open(self) -> None:
        if self.closed:
            raise MemoryRemoteError("RFC_COMMUNICATION_FAILURE: destination has been closed")

    def ping(self) -> None:
        self._ensure_open()
        if self.config.host in self.connector.unreachable_hosts:
            raise MemoryRemoteError(
                f"RFC_COMMUNICATION_FAILURE: partner '{self.config.host}:33{self.config.sys_nr}' not reached"
            )
        users = self.connector.users
        if users is not None and users.get(self.config.user) != self.config.password.get_secret_value():
            raise MemoryRemoteError("RFC_LOGON_FAILURE: Name or password is incorrect (repeat logon)")

    def system_attributes(self) -> SystemAttributes:
        return SystemAttributes(
            system_id=self.connector.system_id,
            client=self.config.client,
            release=self.connector.release,
            extra={"host": self.config.host, "user": self.config.user},
        )

    def create_function(self, name: str) -> MemoryFunction:
        self._ensure_open()
        definition = self.connector.procedures.get(name) or self.connector.procedures.get(name.upper())
        if definition is None:
            raise MemoryRemoteError(f"FU_NOT_FOUND: Function module \"{name}\" not found")
        return MemoryFunction(definition)

    def invoke(self, function: FunctionHandle) -> None:
        self._ensure_open()
        if not isinstance(function, MemoryFunction):
            raise MemoryRemoteError(f"INVALID_HANDLE: {function!r} was not created by this destination")
        impl = function.definition.implementation
        outputs = impl(function.snapshot()) if impl is not None else None
        function.apply(outputs or {})
        self.invocations.append(function.name)
        self.context_open = True

    def end_context(self) -> None:
        self.context_open = False
        self.context_ends += 1

    def close(self) -> None:
        self.closed = True


class InMemoryConnector:
    """Connector that resolves procedures from a local catalog."""

    name = "memory"

    def __init__(
        self,
        procedures: Iterable[ProcedureDefinition] | None = None,
        *,
        users: dict[str, str] | None = None,
        unreachable_hosts: Iterable[str] = (),
        system_id: str = "MEM",
        release: str = "758",
        include_standard: bool = True,
    ):
        self.procedures: dict[str, ProcedureDefinition] = {}
        self.users = users
        self.unreachable_hosts = set(unreachable_hosts)
        self.system_id = system_id
        self.release = release
        self.destinations: list[MemoryDestination] = []
        if include_standard:
            for definition in standard_procedures():
                self.register(definition)
        for definition in procedures or []:
            self.register(definition)

    def register(self, definition: ProcedureDefinition) -> ProcedureDefinition:
        self.procedures[definition.name] = definition
        return definition

    def procedure(self, name: str, parameters: list[ParameterMeta]) -> Callable[[ProcedureImpl], ProcedureImpl]:
        """Decorator registering a Python function as a remote procedure."""

        def decorator(func: ProcedureImpl) -> ProcedureImpl:
            self.register(ProcedureDefinition(name=name, parameters=parameters, implementation=func))
            return func

        return decorator

    @property
    def last_destination(self) -> MemoryDestination | None:
        return self.destinations[-1] if self.destinations else None

    def open(self, config: DestinationConfig) -> MemoryDestination:
        destination = MemoryDestination(self, config)
        self.destinations.append(destination)
        logger.debug("memory connector opened destination host={} client={}", config.host, config.client)
        return destination

    def check_dependencies(self) -> DependencyReport:
        return DependencyReport(
            connector=self.name,
            checks={"catalogLoaded": True},
            paths={"procedures": ", ".join(sorted(self.procedures))},
        )


_STFC_FIELDS = (
    "RFCFLOAT",
    "RFCCHAR1",
    "RFCINT2",
    "RFCINT1",
    "RFCCHAR4",
    "RFCINT4",
    "RFCHEX3",
    "RFCCHAR2",
    "RFCTIME",
    "RFCDATE",
    "RFCDATA1",
    "RFCDATA2",
)


def _stfc_connection(values: dict[str, Any]) -> dict[str, Any]:
    text = values.get("REQUTEXT") or ""
    return {"ECHOTEXT": text, "RESPTEXT": "rfcbridge in-memory destination"}


def _stfc_structure(values: dict[str, Any]) -> dict[str, Any]:
    struct = dict(values.get("IMPORTSTRUCT") or {})
    rows = list(values.get("RFCTABLE") or [])
    rows.append(struct)
    return {
        "ECHOSTRUCT": struct,
        "RESPTEXT": f"{len(rows)} rows in RFCTABLE",
        "RFCTABLE": rows,
    }


def standard_procedures() -> list[ProcedureDefinition]:
    """Connectivity test procedures found on every remote system."""
    imp, exp, tab = ParameterDirection.IMPORT, ParameterDirection.EXPORT, ParameterDirection.TABLES
    return [
        ProcedureDefinition(name="RFC_PING"),
        ProcedureDefinition(
            name="STFC_CONNECTION",
            parameters=[
                ParameterMeta("REQUTEXT", imp),
                ParameterMeta("ECHOTEXT", exp),
                ParameterMeta("RESPTEXT", exp),
            ],
            implementation=_stfc_connection,
        ),
        ProcedureDefinition(
            name="STFC_STRUCTURE",
            parameters=[
                ParameterMeta("IMPORTSTRUCT", imp, ParameterKind.STRUCTURE, _STFC_FIELDS),
                ParameterMeta("ECHOSTRUCT", exp, ParameterKind.STRUCTURE, _STFC_FIELDS),
                ParameterMeta("RESPTEXT", exp),
                ParameterMeta("RFCTABLE", tab, ParameterKind.TABLE, _STFC_FIELDS),
            ],
            implementation=_stfc_structure,
        ),
    ]
