"""Service loop over in-memory streams."""

import io
import json

from rfcbridge.bridge.service import BridgeService


def _lines(stdout: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


def test_serve_keeps_destination_between_requests(settings, connector, connect_payload):
    service = BridgeService(settings, connector)
    requests = [
        json.dumps({"id": "1", "command": "connect", "payload": connect_payload}),
        "",
        json.dumps({
            "id": "2",
            "command": "invokecomplex",
            "payload": {"function": "Z_ECHO_STATUS", "importParams": {"I_ID": "42"}, "exportParams": ["E_STATUS"]},
        }),
        "ping {}",
        "{broken",
        json.dumps({"id": "9", "command": "shutdown"}),
        json.dumps({"id": "10", "command": "ping"}),
    ]
    stdout = io.StringIO()
    handled = service.serve(io.StringIO("\n".join(requests) + "\n"), stdout)

    out = _lines(stdout)
    assert handled == 3
    assert out[0]["id"] == "1" and out[0]["data"]["connected"] is True
    assert out[1] == {"id": "2", "success": True, "data": {"exports": {"E_STATUS": "42"}}}
    assert out[2] == {"success": True, "data": {"alive": True}}
    assert out[3]["success"] is False and out[3]["code"] == "INVALID_PAYLOAD"
    assert out[4] == {"id": "9", "success": True, "data": {"shutdown": True}}
    assert len(out) == 5
    assert connector.last_destination.closed is True


def test_serve_closes_registry_on_eof(settings, connector, connect_payload):
    service = BridgeService(settings, connector)
    stdin = io.StringIO(json.dumps({"command": "connect", "payload": connect_payload}) + "\n")
    service.serve(stdin, io.StringIO())
    assert service.dispatcher.registry.connected is False
    assert connector.last_destination.closed is True


def test_payload_may_be_a_json_string(settings, connector, connect_payload):
    service = BridgeService(settings, connector)
    frame = {"id": "a", "command": "connect", "payload": json.dumps(connect_payload)}
    stdout = io.StringIO()
    service.serve(io.StringIO(json.dumps(frame) + "\n"), stdout)
    assert _lines(stdout)[0]["success"] is True


def test_run_once_joins_payload_tokens(settings, connector):
    service = BridgeService(settings, connector)
    argv = ["connect", '{"host":', '"h",', '"client":', '"1",', '"sysNr":', '"00",', '"user":', '"u",', '"password":', '"p"}']
    envelope = service.run_once(argv)
    assert envelope.success, envelope.error
    assert envelope.data["client"] == "1"


def test_run_once_without_arguments(settings, connector):
    envelope = BridgeService(settings, connector).run_once([])
    assert envelope.success is False
    assert envelope.error == "No command specified"


def test_fresh_service_reports_not_connected(settings, connector, connect_payload):
    BridgeService(settings, connector).run_once(["connect", json.dumps(connect_payload)])
    envelope = BridgeService(settings, connector).run_once(["ping"])
    assert envelope.code == "NOT_CONNECTED"
