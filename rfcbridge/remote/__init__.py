"""Remote function-call connectors."""

from __future__ import annotations

from rfcbridge.remote.contracts import (
    DependencyReport,
    FunctionHandle,
    ParameterDirection,
    ParameterKind,
    ParameterMeta,
    RecordHandle,
    RemoteConnector,
    RemoteDestination,
    SystemAttributes,
    TableHandle,
    as_text,
    find_parameter,
)
from rfcbridge.remote.memory import InMemoryConnector, ProcedureDefinition
from rfcbridge.remote.pyrfc_connector import PyRfcConnector


def get_connector(name: str) -> RemoteConnector:
    """Build a connector by its configured name."""
    key = (name or "").strip().lower()
    if key == "pyrfc":
        return PyRfcConnector()
    if key == "memory":
        return InMemoryConnector()
    raise ValueError(f"unknown connector: {name}")


__all__ = [
    "DependencyReport",
    "FunctionHandle",
    "InMemoryConnector",
    "ParameterDirection",
    "ParameterKind",
    "ParameterMeta",
    "ProcedureDefinition",
    "PyRfcConnector",
    "RecordHandle",
    "RemoteConnector",
    "RemoteDestination",
    "SystemAttributes",
    "TableHandle",
    "as_text",
    "find_parameter",
    "get_connector",
]
