import json

import pytest

from rfcbridge.bridge.protocol import CallResult, CommandRequest, Envelope, FieldDiagnostic
from rfcbridge.bridge.serialization import (
    decode_envelope,
    encode_envelope_line,
    encode_request_line,
    find_envelope_line,
    parse_call_request,
    parse_command_line,
    parse_flag,
    parse_payload,
)
from rfcbridge.utils.exceptions import MissingFieldError, PayloadError


def test_parse_payload_blank_and_absent_mean_empty_object():
    assert parse_payload(None) == {}
    assert parse_payload("   ") == {}
    assert parse_payload('{"a": 1}') == {"a": 1}


@pytest.mark.parametrize("raw", ['"text"', "[1]", "42", 7])
def test_parse_payload_rejects_non_objects(raw):
    with pytest.raises(PayloadError):
        parse_payload(raw)


def test_parse_payload_reports_position_of_bad_json():
    with pytest.raises(PayloadError) as info:
        parse_payload('{"a": }')
    assert "line 1" in info.value.message


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), ("true", True), ("TRUE", True), (" True ", True), (False, False), ("yes", False), (1, False), (None, False)],
)
def test_parse_flag(value, expected):
    assert parse_flag(value) is expected


def test_parse_call_request_full_payload():
    request = parse_call_request({
        "function": " BAPI_VENDOR_GETDETAIL ",
        "importParams": {"VENDORNO": "100001"},
        "importStructures": {"HEADER": {"NAME": "x"}},
        "importTables": {"ITEMS": [{"A": 1}]},
        "exportParams": "RETURN",
        "structures": ["GENERALDETAIL"],
        "tables": ["BANKDETAIL"],
        "endContext": "true",
        "diagnostics": True,
    })
    assert request.function == "BAPI_VENDOR_GETDETAIL"
    assert request.export_params == ["RETURN"]
    assert request.structures == ["GENERALDETAIL"]
    assert request.tables == ["BANKDETAIL"]
    assert request.end_context is True
    assert request.diagnostics is True


def test_parse_call_request_leaves_unrequested_lists_unset():
    request = parse_call_request({"function": "RFC_PING"})
    assert request.export_params is None
    assert request.structures is None
    assert request.tables is None
    assert request.import_tables == {}


def test_parse_call_request_requires_function():
    with pytest.raises(MissingFieldError) as info:
        parse_call_request({"function": "  "})
    assert info.value.message == "No function name"


@pytest.mark.parametrize(
    "payload",
    [
        {"function": "F", "importTables": {"T": {"not": "a list"}}},
        {"function": "F", "importTables": {"T": [1, 2]}},
        {"function": "F", "importStructures": {"S": [1]}},
        {"function": "F", "importParams": []},
        {"function": "F", "tables": [1]},
    ],
)
def test_parse_call_request_rejects_wrong_shapes(payload):
    with pytest.raises(PayloadError):
        parse_call_request(payload)


def test_parse_command_line_json_frame_and_argv_style():
    frame = parse_command_line('{"id": 7, "command": "ping", "payload": {}}')
    assert frame == CommandRequest(command="ping", payload={}, id="7")
    argv = parse_command_line('connect {"host": "h"}')
    assert argv == CommandRequest(command="connect", payload='{"host": "h"}')


def test_parse_command_line_bad_frame():
    with pytest.raises(PayloadError):
        parse_command_line("{nope")


def test_envelope_lines_are_single_line_json():
    line = encode_envelope_line(Envelope.fail("line one\nline two", code="REMOTE_ERROR", trace="a\nb"))
    assert "\n" not in line
    assert line.startswith("{")
    decoded = decode_envelope(json.loads(line))
    assert decoded.error == "line one\nline two"
    assert decoded.code == "REMOTE_ERROR"


def test_find_envelope_line_skips_noise():
    output = "warming up\n  \n{\"success\": true, \"data\": {}}\n"
    assert find_envelope_line(output) == '{"success": true, "data": {}}'
    assert find_envelope_line("nothing here") is None


@pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\x85"])
def test_unicode_line_separators_stay_inside_the_envelope(separator):
    line = encode_envelope_line(Envelope.ok({"E_TEXT": f"a{separator}b"}))
    found = find_envelope_line("noise\n" + line + "\n")
    assert json.loads(found)["data"]["E_TEXT"] == f"a{separator}b"


def test_encode_request_line():
    line = encode_request_line(CommandRequest(command="sync", payload={}, id="r1"))
    assert line == '{"id": "r1", "command": "sync", "payload": {}}'


def test_call_result_diagnostics_only_on_request():
    result = CallResult(
        exports={"E": "1"},
        diagnostics=[FieldDiagnostic(scope="table", container="T", field="F", status="skipped", reason="bad", row=2)],
    )
    assert result.to_data() == {"exports": {"E": "1"}}
    assert result.to_data(include_diagnostics=True)["diagnostics"] == [
        {"scope": "table", "container": "T", "field": "F", "status": "skipped", "reason": "bad", "row": 2}
    ]
