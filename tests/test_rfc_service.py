import threading
import time

import pytest

from sap_adapter.exceptions import SAPTransportError
from sap_adapter.rfc_service import SAPRFCService


class _FakeTransport:
    def __init__(self, responses=None, fail_on=()):
        self.responses = responses or {}
        self.fail_on = set(fail_on)
        self.calls = []

    def call(self, function_name, params):
        self.calls.append((function_name, params))
        if function_name in self.fail_on:
            raise ConnectionError(f"{function_name} unreachable")
        return dict(self.responses.get(function_name, {}))


def _service(transport):
    service = SAPRFCService(transport, _DummyLogger())
    service.connect()
    return service


def test_execute_rfc_requires_connection():
    service = SAPRFCService(_FakeTransport(), _DummyLogger())
    with pytest.raises(SAPTransportError, match="Not connected to SAP system"):
        service.execute_rfc("RFC_SYSTEM_INFO")


def test_execute_rfc_enriches_response_and_stats():
    transport = _FakeTransport({"BAPI_MATERIAL_GET_DETAIL": {"MATERIAL_GENERAL_DATA": {}}})
    service = _service(transport)
    response = service.execute_rfc("BAPI_MATERIAL_GET_DETAIL", {"MATERIAL": "MAT001"})
    assert response["FUNCTION_NAME"] == "BAPI_MATERIAL_GET_DETAIL"
    assert response["SUCCESS"] is True
    assert response["EXECUTION_TIME"] >= 0
    stats = service.get_connection_stats()
    assert stats["calls_executed"] == 1
    assert stats["errors_count"] == 0
    assert stats["last_activity"] is not None


def test_transport_failure_is_counted_and_reraised():
    service = _service(_FakeTransport(fail_on={"BAPI_X"}))
    with pytest.raises(SAPTransportError, match="unreachable"):
        service.execute_rfc("BAPI_X", {})
    stats = service.get_connection_stats()
    assert stats["calls_executed"] == 1
    assert stats["errors_count"] == 1


def test_execute_bapi_commits_when_no_errors():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {"RETURN": {"TYPE": "S", "MESSAGE": "ok"}}})
    service = _service(transport)
    service.execute_bapi("BAPI_MATERIAL_SAVEDATA", {})
    assert transport.calls[-1] == ("BAPI_TRANSACTION_COMMIT", {"WAIT": "X"})


def test_execute_bapi_commits_without_message_list():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {}})
    service = _service(transport)
    service.execute_bapi("BAPI_MATERIAL_SAVEDATA", {})
    assert [name for name, _ in transport.calls] == ["BAPI_MATERIAL_SAVEDATA", "BAPI_TRANSACTION_COMMIT"]


def test_execute_bapi_skips_commit_on_error():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {"RETURN": [{"TYPE": "E", "MESSAGE": "bad"}]}})
    service = _service(transport)
    service.execute_bapi("BAPI_MATERIAL_SAVEDATA", {})
    assert [name for name, _ in transport.calls] == ["BAPI_MATERIAL_SAVEDATA"]


def test_execute_bapi_skips_commit_when_opted_out():
    transport = _FakeTransport()
    service = _service(transport)
    service.execute_bapi("BAPI_MATERIAL_SAVEDATA", {}, commit_work=False)
    assert len(transport.calls) == 1


def test_commit_failure_does_not_change_response():
    transport = _FakeTransport(
        {"BAPI_MATERIAL_SAVEDATA": {"RETURN": []}},
        fail_on={"BAPI_TRANSACTION_COMMIT"},
    )
    service = _service(transport)
    response = service.execute_bapi("BAPI_MATERIAL_SAVEDATA", {})
    assert response["SUCCESS"] is True
    assert response["FUNCTION_NAME"] == "BAPI_MATERIAL_SAVEDATA"


class _SlowWriteTransport:
    def __init__(self):
        self.calls = []

    def call(self, function_name, params):
        if function_name != "BAPI_TRANSACTION_COMMIT":
            time.sleep(0.02)
        self.calls.append(function_name)
        return {}


def test_each_write_is_followed_by_its_commit_under_concurrency():
    transport = _SlowWriteTransport()
    service = _service(transport)

    threads = [
        threading.Thread(target=service.execute_bapi, args=(f"WRITE_{index}", {}))
        for index in range(6)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(transport.calls) == 12
    for write, commit in zip(transport.calls[::2], transport.calls[1::2]):
        assert write.startswith("WRITE_")
        assert commit == "BAPI_TRANSACTION_COMMIT"
    assert service.get_connection_stats()["calls_executed"] == 12


def test_system_info_and_test_connection():
    transport = _FakeTransport({"RFC_SYSTEM_INFO": {"RFCSI_EXPORT": {"RFCSYSID": "PRD", "RFCMANDT": "100"}}})
    service = _service(transport)
    assert service.test_connection() is True
    info = service.get_system_info()
    assert info["system_id"] == "PRD"
    assert info["client"] == "100"


def test_test_connection_false_when_disconnected():
    service = _service(_FakeTransport())
    service.disconnect()
    assert service.is_connected() is False
    assert service.test_connection() is False


class _DummyLogger:
    def getChild(self, name):  # noqa: D401
        return self

    def debug(self, *args, **kwargs):
        pass

    def info(self, *args, **kwargs):
        pass

    def warning(self, *args, **kwargs):
        pass

    def error(self, *args, **kwargs):
        pass
