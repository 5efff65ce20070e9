import pytest

from rfcbridge.bridge.error_boundary import exception_result, no_command_result, remote_errors
from rfcbridge.utils.exceptions import NotConnectedError, RemoteCallError, RemoteFailureKind


def test_no_command_result():
    envelope = no_command_result(request_id="1")
    assert envelope.to_dict() == {"id": "1", "success": False, "error": "No command specified", "code": "MISSING_COMMAND"}


def test_bridge_error_keeps_code_and_message():
    envelope = exception_result(command="ping", exc=NotConnectedError(), include_trace=False)
    assert envelope.error == "Not connected. Call connect() first."
    assert envelope.code == "NOT_CONNECTED"
    assert envelope.trace is None


def test_unhandled_exception_is_classified():
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        envelope = exception_result(command="invoke", exc=exc, include_trace=True)
    assert envelope.error == "boom"
    assert envelope.code == "INTERNAL_ERROR"
    assert "RuntimeError: boom" in envelope.trace


def test_key_error_reads_as_missing_field():
    envelope = exception_result(command="connect", exc=KeyError("host"), include_trace=False)
    assert envelope.error == "Missing required field: host"
    assert envelope.code == "MISSING_FIELD"


def test_remote_errors_wraps_connector_failures_verbatim():
    with pytest.raises(RemoteCallError) as info:
        with remote_errors("connect"):
            raise OSError("RFC_LOGON_FAILURE: Name or password is incorrect (repeat logon)")
    assert info.value.message == "RFC_LOGON_FAILURE: Name or password is incorrect (repeat logon)"
    assert info.value.details["operation"] == "connect"
    assert info.value.details["kind"] == RemoteFailureKind.LOGON.value
    assert isinstance(info.value.__cause__, OSError)


def test_remote_errors_passes_bridge_errors_through():
    with pytest.raises(NotConnectedError):
        with remote_errors("ping"):
            raise NotConnectedError()
