"""Connector adapter over pyrfc (SAP NW RFC SDK bindings).

pyrfc is call-based: a function is executed with ``Connection.call(name,
**params)`` and returns a dict of outputs. The handles below stage input
values locally against the metadata from ``get_function_description`` and
keep the returned dict for reading, which gives the bridge the same
get/set-by-name surface as a handle-based SDK.
"""

from __future__ import annotations

import importlib.util
import os
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable

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
from rfcbridge.utils.exceptions import DependencyError

_DIRECTIONS = {
    "RFC_IMPORT": ParameterDirection.IMPORT,
    "RFC_EXPORT": ParameterDirection.EXPORT,
    "RFC_CHANGING": ParameterDirection.CHANGING,
    "RFC_TABLES": ParameterDirection.TABLES,
}
_INT_TYPES = {"RFCTYPE_INT", "RFCTYPE_INT1", "RFCTYPE_INT2", "RFCTYPE_INT8"}
_FLOAT_TYPES = {"RFCTYPE_FLOAT"}
_DECIMAL_TYPES = {"RFCTYPE_BCD", "RFCTYPE_DECF16", "RFCTYPE_DECF34"}
_TEXT_TYPES = {"RFCTYPE_CHAR", "RFCTYPE_NUM", "RFCTYPE_STRING", "RFCTYPE_DATE", "RFCTYPE_TIME"}


def coerce_value(field_type: str, value: Any) -> Any:
    """Convert a JSON value to what pyrfc expects for the declared ABAP type."""
    if value is None:
        return None
    if field_type in _INT_TYPES and isinstance(value, str):
        return int(value.strip() or "0")
    if field_type in _FLOAT_TYPES and isinstance(value, str):
        return float(value.strip() or "0")
    if field_type in _DECIMAL_TYPES and isinstance(value, (str, int, float)) and not isinstance(value, bool):
        try:
            return Decimal(str(value).strip() or "0")
        except InvalidOperation as exc:
            raise ValueError(f"invalid decimal value {value!r}") from exc
    if field_type in _TEXT_TYPES:
        if isinstance(value, bool):
            return "X" if value else ""
        if isinstance(value, (int, float)):
            return str(value)
    return value


def _field_types(type_description: Any) -> dict[str, str]:
    fields = getattr(type_description, "fields", None) or []
    return {str(item["name"]): str(item.get("field_type") or "") for item in fields}


class PyRfcRecord:
    """Structure value or table row staged as a plain dict."""

    def __init__(self, owner: str, field_types: dict[str, str], values: dict[str, Any] | None = None):
        self._owner = owner
        self._types = field_types
        self.values: dict[str, Any] = dict(values or {})

    def _check(self, name: str) -> str:
        if name not in self._types:
            raise LookupError(f"field {name} does not exist in {self._owner}")
        return self._types[name]

    def field_names(self) -> list[str]:
        return list(self._types)

    def set_value(self, name: str, value: Any) -> None:
        field_type = self._check(name)
        self.values[name] = coerce_value(field_type, value)

    def get_string(self, name: str) -> str:
        self._check(name)
        return as_text(self.values.get(name))


class PyRfcTable:
    """Table parameter staged as a list of PyRfcRecord rows."""

    def __init__(self, owner: str, field_types: dict[str, str], rows: list[dict[str, Any]] | None = None):
        self._owner = owner
        self._types = field_types
        self.rows = [PyRfcRecord(owner, field_types, row) for row in rows or [] if isinstance(row, dict)]

    def field_names(self) -> list[str]:
        return list(self._types)

    def append(self) -> PyRfcRecord:
        record = PyRfcRecord(self._owner, self._types)
        self.rows.append(record)
        return record

    def row_count(self) -> int:
        return len(self.rows)

    def row(self, index: int) -> PyRfcRecord:
        if index < 0 or index >= len(self.rows):
            raise IndexError(f"row {index} out of range for {self._owner}")
        return self.rows[index]


class PyRfcFunction:
    """Function handle built from a pyrfc FunctionDescription."""

    def __init__(self, name: str, description: Any):
        self.name = name
        self._meta: dict[str, ParameterMeta] = {}
        self._scalar_types: dict[str, str] = {}
        self._record_types: dict[str, dict[str, str]] = {}
        self._scalars: dict[str, Any] = {}
        self._structures: dict[str, PyRfcRecord] = {}
        self._tables: dict[str, PyRfcTable] = {}
        self._touched: set[str] = set()
        for param in getattr(description, "parameters", None) or []:
            self._add_parameter(param)

    def _add_parameter(self, param: dict[str, Any]) -> None:
        name = str(param["name"])
        direction = _DIRECTIONS.get(str(param.get("direction") or ""), ParameterDirection.IMPORT)
        param_type = str(param.get("parameter_type") or "")
        if param_type == "RFCTYPE_TABLE" or direction is ParameterDirection.TABLES:
            kind = ParameterKind.TABLE
        elif param_type == "RFCTYPE_STRUCTURE":
            kind = ParameterKind.STRUCTURE
        else:
            kind = ParameterKind.SCALAR
        field_types = _field_types(param.get("type_description")) if kind is not ParameterKind.SCALAR else {}
        self._meta[name] = ParameterMeta(
            name=name,
            direction=direction,
            kind=kind,
            fields=tuple(field_types),
            optional=bool(param.get("optional")),
        )
        self._scalar_types[name] = param_type
        if kind is not ParameterKind.SCALAR:
            self._record_types[name] = field_types

    def _lookup(self, name: str, kind: ParameterKind | None = None) -> ParameterMeta:
        meta = self._meta.get(name)
        if meta is None:
            raise LookupError(f"parameter {name} does not exist in function {self.name}")
        if kind is not None and meta.kind is not kind:
            raise TypeError(f"parameter {name} of {self.name} is a {meta.kind.value}, not a {kind.value}")
        return meta

    def parameters(self) -> list[ParameterMeta]:
        return list(self._meta.values())

    def set_value(self, name: str, value: Any) -> None:
        meta = self._lookup(name)
        if meta.kind is ParameterKind.STRUCTURE:
            record = self.get_structure(name)
            for key, item in dict(value).items():
                record.set_value(key, item)
            return
        if meta.kind is ParameterKind.TABLE:
            table = self.get_table(name)
            for row in value:
                record = table.append()
                for key, item in dict(row).items():
                    record.set_value(key, item)
            return
        self._scalars[name] = coerce_value(self._scalar_types[name], value)
        self._touched.add(name)

    def get_string(self, name: str) -> str:
        meta = self._lookup(name)
        if meta.kind is ParameterKind.STRUCTURE:
            return as_text(self.get_structure(name).values)
        if meta.kind is ParameterKind.TABLE:
            return as_text([row.values for row in self.get_table(name).rows])
        return as_text(self._scalars.get(name))

    def get_structure(self, name: str) -> PyRfcRecord:
        self._lookup(name, ParameterKind.STRUCTURE)
        if name not in self._structures:
            self._structures[name] = PyRfcRecord(name, self._record_types[name])
        self._touched.add(name)
        return self._structures[name]

    def get_table(self, name: str) -> PyRfcTable:
        self._lookup(name, ParameterKind.TABLE)
        if name not in self._tables:
            self._tables[name] = PyRfcTable(name, self._record_types[name])
        self._touched.add(name)
        return self._tables[name]

    def call_kwargs(self) -> dict[str, Any]:
        """Input values to send: every touched import, changing or tables parameter."""
        kwargs: dict[str, Any] = {}
        for name in self._touched:
            meta = self._meta[name]
            if meta.direction is ParameterDirection.EXPORT:
                continue
            if meta.kind is ParameterKind.STRUCTURE:
                kwargs[name] = dict(self._structures[name].values)
            elif meta.kind is ParameterKind.TABLE:
                kwargs[name] = [dict(row.values) for row in self._tables[name].rows]
            else:
                kwargs[name] = self._scalars.get(name)
        return kwargs

    def load_result(self, result: dict[str, Any]) -> None:
        for name, value in (result or {}).items():
            meta = self._meta.get(name)
            if meta is None:
                continue
            if meta.kind is ParameterKind.STRUCTURE:
                self._structures[name] = PyRfcRecord(name, self._record_types[name], value if isinstance(value, dict) else {})
            elif meta.kind is ParameterKind.TABLE:
                self._tables[name] = PyRfcTable(name, self._record_types[name], value if isinstance(value, list) else [])
            else:
                self._scalars[name] = value


def _default_connection_factory(**params: Any) -> Any:
    try:
        from pyrfc import Connection
    except ImportError as exc:
        raise DependencyError(
            "pyrfc is not installed. Install the SAP NW RFC SDK and `pip install pyrfc`.",
            missing=["pyrfc"],
        ) from exc
    return Connection(**params)


class PyRfcDestination:
    """One stateful pyrfc connection, recycled when idle past the timeout."""

    def __init__(
        self,
        config: DestinationConfig,
        connection_factory: Callable[..., Any],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._factory = connection_factory
        self._clock = clock
        self._conn: Any | None = None
        self._last_used = 0.0

    def _connect_params(self) -> dict[str, Any]:
        return {
            "ashost": self.config.host,
            "sysnr": self.config.sys_nr,
            "client": self.config.client,
            "user": self.config.user,
            "passwd": self.config.password.get_secret_value(),
            "lang": self.config.lang,
            "config": {"rstrip": True},
        }

    def _connection(self) -> Any:
        now = self._clock()
        timeout = self.config.connection_idle_timeout
        if self._conn is not None and timeout > 0 and now - self._last_used > timeout:
            logger.debug("Recycling pyrfc connection idle for {:.0f}s", now - self._last_used)
            self._drop_connection()
        if self._conn is None:
            self._conn = self._factory(**self._connect_params())
        self._last_used = now
        return self._conn

    def _drop_connection(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing pyrfc connection: {}", exc)

    def ping(self) -> None:
        self._connection().ping()

    def system_attributes(self) -> SystemAttributes:
        attrs = dict(self._connection().get_connection_attributes() or {})
        return SystemAttributes(
            system_id=str(attrs.get("sysId") or ""),
            client=str(attrs.get("client") or self.config.client),
            release=str(attrs.get("partnerRel") or attrs.get("rel") or ""),
            extra=attrs,
        )

    def create_function(self, name: str) -> PyRfcFunction:
        description = self._connection().get_function_description(name)
        return PyRfcFunction(name, description)

    def invoke(self, function: FunctionHandle) -> None:
        if not isinstance(function, PyRfcFunction):
            raise TypeError(f"{function!r} was not created by a pyrfc destination")
        result = self._connection().call(function.name, **function.call_kwargs())
        function.load_result(result)

    def end_context(self) -> None:
        if self._conn is not None:
            self._conn.reset_server_context()

    def close(self) -> None:
        self._drop_connection()


class PyRfcConnector:
    """RemoteConnector backed by pyrfc."""

    name = "pyrfc"

    def __init__(self, connection_factory: Callable[..., Any] | None = None):
        self._factory = connection_factory or _default_connection_factory

    def open(self, config: DestinationConfig) -> PyRfcDestination:
        if config.pool_size > 1:
            logger.debug(
                "pyrfc keeps one stateful connection per destination (poolSize={}, peak={})",
                config.pool_size,
                config.peak_connection_limit,
            )
        return PyRfcDestination(config, self._factory)

    def check_dependencies(self) -> DependencyReport:
        """Report whether pyrfc and the NW RFC SDK are available."""
        sdk_home = os.environ.get("SAPNWRFC_HOME", "").strip()
        sdk_dir = Path(sdk_home).expanduser() if sdk_home else None
        lib_dir = sdk_dir / "lib" if sdk_dir else None
        checks = {
            "pyrfcInstalled": importlib.util.find_spec("pyrfc") is not None,
            "sdkHomeSet": bool(sdk_home),
            "sdkHomeExists": bool(sdk_dir and sdk_dir.is_dir()),
            "sdkLibExists": bool(lib_dir and lib_dir.is_dir()),
        }
        missing: list[str] = []
        suggestions: list[str] = []
        if not checks["pyrfcInstalled"]:
            missing.append("pyrfc")
            suggestions.append("Install the Python bindings: pip install 'rfcbridge[sap]'")
        if not checks["sdkHomeSet"]:
            missing.append("SAPNWRFC_HOME")
            suggestions.append("Download the SAP NW RFC SDK from https://support.sap.com/nwrfcsdk and set SAPNWRFC_HOME")
        elif not checks["sdkLibExists"]:
            missing.append(f"{sdk_home}/lib")
            suggestions.append(f"SAPNWRFC_HOME does not contain a lib directory: {sdk_home}")
        return DependencyReport(
            connector=self.name,
            checks=checks,
            paths={"sapnwrfcHome": sdk_home, "sdkLib": str(lib_dir) if lib_dir else ""},
            missing=missing,
            suggestions=suggestions,
        )
