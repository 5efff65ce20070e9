"""Pytest hooks and fixtures."""

import os

import pytest

from rfcbridge.bridge.dispatcher import CommandDispatcher
from rfcbridge.config.schema import BridgeSettings
from rfcbridge.remote.contracts import ParameterDirection, ParameterKind, ParameterMeta
from rfcbridge.remote.memory import InMemoryConnector

IMP, EXP, CHG, TAB = (
    ParameterDirection.IMPORT,
    ParameterDirection.EXPORT,
    ParameterDirection.CHANGING,
    ParameterDirection.TABLES,
)

VENDOR_FIELDS = ("LIFNR", "NAME1", "ORT01")


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "requires_sap: needs pyrfc and a reachable SAP system (skipped unless RFCBRIDGE_SAP_TEST_HOST is set)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip requires_sap tests unless a live system is configured."""
    if os.environ.get("RFCBRIDGE_SAP_TEST_HOST"):
        return
    skip = pytest.mark.skip(reason="No SAP test system configured")
    for item in items:
        if "requires_sap" in item.keywords:
            item.add_marker(skip)


def build_connector(**kwargs) -> InMemoryConnector:
    """Memory connector with a few vendor-style procedures on top of the standard ones."""
    connector = InMemoryConnector(**kwargs)

    @connector.procedure(
        "Z_ECHO_STATUS",
        [ParameterMeta("I_ID", IMP), ParameterMeta("E_STATUS", EXP), ParameterMeta("C_COUNTER", CHG)],
    )
    def _echo_status(values):
        counter = int(values.get("C_COUNTER") or 0)
        return {"E_STATUS": values.get("I_ID"), "C_COUNTER": counter + 1}

    @connector.procedure(
        "Z_VENDOR_SYNC",
        [
            ParameterMeta("I_HEADER", IMP, ParameterKind.STRUCTURE, VENDOR_FIELDS),
            ParameterMeta("E_HEADER", EXP, ParameterKind.STRUCTURE, VENDOR_FIELDS),
            ParameterMeta("IT_VENDORS", TAB, ParameterKind.TABLE, VENDOR_FIELDS),
            ParameterMeta("ET_VENDORS", TAB, ParameterKind.TABLE, VENDOR_FIELDS),
            ParameterMeta("ET_EMPTY", TAB, ParameterKind.TABLE, VENDOR_FIELDS),
            ParameterMeta("E_COUNT", EXP),
        ],
    )
    def _vendor_sync(values):
        rows = values.get("IT_VENDORS") or []
        return {
            "E_HEADER": values.get("I_HEADER") or {},
            "ET_VENDORS": rows,
            "E_COUNT": len(rows),
        }

    return connector


@pytest.fixture
def make_connector():
    return build_connector


@pytest.fixture
def connector() -> InMemoryConnector:
    return build_connector()


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(connector="memory", include_trace=False)


@pytest.fixture
def dispatcher(settings, connector) -> CommandDispatcher:
    return CommandDispatcher(settings, connector)


@pytest.fixture
def connect_payload() -> dict:
    return {
        "host": "sap.example.com",
        "client": "100",
        "sysNr": "00",
        "user": "RFC_USER",
        "password": "secret",
    }


@pytest.fixture
def connected(dispatcher, connect_payload) -> CommandDispatcher:
    envelope = dispatcher.dispatch("connect", connect_payload)
    assert envelope.success, envelope.error
    return dispatcher
