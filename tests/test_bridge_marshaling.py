"""Marshaler and extractor against memory handles and small failing fakes."""

import pytest

from rfcbridge.bridge.extractor import extract_output_parameters, extract_results
from rfcbridge.bridge.marshaler import missing_mandatory_imports, populate_imports, set_scalars
from rfcbridge.bridge.protocol import CallRequest
from rfcbridge.remote.contracts import ParameterDirection, ParameterKind, ParameterMeta
from rfcbridge.remote.memory import MemoryFunction, MemoryRemoteError, ProcedureDefinition
from rfcbridge.utils.exceptions import UnknownParameterError

FIELDS = ("MATNR", "MENGE")


def _function() -> MemoryFunction:
    return MemoryFunction(
        ProcedureDefinition(
            name="Z_ORDER",
            parameters=[
                ParameterMeta("I_PLANT", ParameterDirection.IMPORT),
                ParameterMeta("I_ITEM", ParameterDirection.IMPORT, ParameterKind.STRUCTURE, FIELDS),
                ParameterMeta("T_ITEMS", ParameterDirection.TABLES, ParameterKind.TABLE, FIELDS),
                ParameterMeta("E_DOC", ParameterDirection.EXPORT),
            ],
        )
    )


class _BrokenRecord:
    def __init__(self, values):
        self.values = values

    def field_names(self):
        return list(self.values)

    def set_value(self, name, value):
        self.values[name] = value

    def get_string(self, name):
        if self.values[name] is None:
            raise MemoryRemoteError(f"CONVERSION_ERROR: {name} cannot be rendered")
        return str(self.values[name])


class _BrokenTable:
    def field_names(self):
        raise MemoryRemoteError("metadata unavailable")


class _FakeFunction:
    """Declares one structure and one table whose accessors misbehave."""

    name = "Z_FAKE"

    def __init__(self):
        self.record = _BrokenRecord({"A": "1", "B": None})

    def parameters(self):
        return [
            ParameterMeta("ES_DATA", ParameterDirection.EXPORT, ParameterKind.STRUCTURE, ("A", "B")),
            ParameterMeta("ET_DATA", ParameterDirection.TABLES, ParameterKind.TABLE, ("A",)),
            ParameterMeta("E_TEXT", ParameterDirection.EXPORT),
            ParameterMeta("C_FLAG", ParameterDirection.CHANGING),
        ]

    def set_value(self, name, value):
        raise MemoryRemoteError("read only")

    def get_string(self, name):
        if name == "E_TEXT":
            return "ok"
        raise MemoryRemoteError(f"cannot read {name}")

    def get_structure(self, name):
        return self.record

    def get_table(self, name):
        return _BrokenTable()


def test_populate_imports_fills_scalars_structures_and_rows_in_order():
    function = _function()
    request = CallRequest(
        function="Z_ORDER",
        import_params={"I_PLANT": "1000"},
        import_structures={"I_ITEM": {"MATNR": "M-01", "MENGE": 3}},
        import_tables={"T_ITEMS": [{"MATNR": "A"}, {"MATNR": "B"}, {"MATNR": "A"}]},
    )
    diagnostics = populate_imports(function, request)
    assert diagnostics == []
    values = function.snapshot()
    assert values["I_PLANT"] == "1000"
    assert values["I_ITEM"] == {"MATNR": "M-01", "MENGE": 3}
    assert [row["MATNR"] for row in values["T_ITEMS"]] == ["A", "B", "A"]


def test_missing_mandatory_imports_are_reported():
    request = CallRequest(function="Z_ORDER", import_params={"i_plant": "1000"})
    missing = missing_mandatory_imports(_function(), request)
    assert [(d.container, d.status) for d in missing] == [("I_ITEM", "missing")]
    assert missing[0].reason == "mandatory structure import not supplied"


def test_optional_imports_may_be_omitted():
    function = MemoryFunction(
        ProcedureDefinition(
            name="Z_OPT",
            parameters=[
                ParameterMeta("I_FLAG", ParameterDirection.IMPORT, optional=True),
                ParameterMeta("C_COUNT", ParameterDirection.CHANGING),
            ],
        )
    )
    assert missing_mandatory_imports(function, CallRequest(function="Z_OPT")) == []


def test_zero_rows_leaves_existing_empty_table():
    function = _function()
    populate_imports(function, CallRequest(function="Z_ORDER", import_tables={"T_ITEMS": []}))
    assert function.get_table("T_ITEMS").row_count() == 0


def test_bad_row_field_is_recorded_with_row_index():
    function = _function()
    request = CallRequest(
        function="Z_ORDER",
        import_tables={"T_ITEMS": [{"MATNR": "A"}, {"MATNR": "B", "WERKS": "X"}]},
    )
    diagnostics = populate_imports(function, request)
    assert len(diagnostics) == 1
    item = diagnostics[0]
    assert (item.scope, item.container, item.field, item.row, item.status) == ("table", "T_ITEMS", "WERKS", 1, "skipped")
    assert "FIELD_NOT_FOUND" in item.reason
    assert function.get_table("T_ITEMS").row_count() == 2


def test_structure_name_lookup_falls_back_to_upper_case():
    function = _function()
    populate_imports(function, CallRequest(function="Z_ORDER", import_structures={"i_item": {"MATNR": "M"}}))
    assert function.get_structure("I_ITEM").get_string("MATNR") == "M"


def test_table_name_given_as_structure_is_undeclared():
    with pytest.raises(UnknownParameterError):
        populate_imports(_function(), CallRequest(function="Z_ORDER", import_structures={"T_ITEMS": {}}))


def test_set_scalars_without_diagnostics_propagates():
    with pytest.raises(MemoryRemoteError):
        set_scalars(_function(), {"I_MISSING": 1})


def test_unreadable_values_default_to_empty_strings():
    request = CallRequest(
        function="Z_FAKE",
        export_params=["E_TEXT", "E_GONE"],
        structures=["ES_DATA"],
        tables=["ET_DATA"],
    )
    result = extract_results(_FakeFunction(), request)
    assert result.exports == {"E_TEXT": "ok", "E_GONE": ""}
    assert result.structures == {"ES_DATA": {"A": "1", "B": ""}}
    assert result.tables == {"ET_DATA": []}
    statuses = {(d.scope, d.container, d.field) for d in result.diagnostics}
    assert statuses == {("export", "E_GONE", None), ("structure", "ES_DATA", "B"), ("table", "ET_DATA", None)}
    assert all(d.status == "defaulted" for d in result.diagnostics)


def test_extract_only_includes_requested_sections():
    result = extract_results(_function(), CallRequest(function="Z_ORDER", export_params=["E_DOC"]))
    assert result.to_data() == {"exports": {"E_DOC": ""}}


def test_undeclared_structure_on_extract_fails():
    with pytest.raises(UnknownParameterError):
        extract_results(_function(), CallRequest(function="Z_ORDER", structures=["ES_NOPE"]))


def test_output_parameters_include_changing_and_fallback():
    assert extract_output_parameters(_FakeFunction()) == {"ES_DATA": "", "E_TEXT": "ok", "C_FLAG": ""}
