import asyncio
import threading
from http.server import ThreadingHTTPServer

import pytest

from config import AdapterConfig, PushChannelConfig, SAPConfig, WebhookConfig
from sap_adapter.adapter import SAPAdapter
from sap_adapter.exceptions import SAPTransportError
from sap_adapter.sap_connector import SAPConnector
from sap_adapter.sap_mock_server import MockSAPHandler


@pytest.fixture
def mock_sap():
    server = ThreadingHTTPServer(("127.0.0.1", 0), MockSAPHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


def test_customer_lifecycle_against_mock_gateway(mock_sap):
    config = AdapterConfig(
        sap=SAPConfig(endpoint=mock_sap, timeout=5),
        push_channel=PushChannelConfig(enabled=False),
        webhook=WebhookConfig(enabled=False),
    )
    logger = _DummyLogger()
    adapter = SAPAdapter(config, transport=SAPConnector(config.sap, logger), logger=logger)
    adapter.rfc.connect()

    def event(event_type, event_id):
        return {
            "eventType": event_type,
            "entityType": "Customer",
            "eventId": event_id,
            "timeStamp": "2024-01-01T00:00:00Z",
            "payload": {"data": {"id": "CUST-42", "firstName": "Ada", "city": "Madrid"}},
        }

    created = asyncio.run(adapter.process_event(event("Create", "e1")))
    assert created.success is True
    assert created.metadata["object_key"] == "CUST-42"

    duplicate = asyncio.run(adapter.process_event(event("Create", "e2")))
    assert duplicate.success is False
    assert duplicate.error.startswith("SAP BAPI Error: F2017")

    synced = asyncio.run(adapter.process_event(event("Sync", "e3")))
    assert synced.success is True
    assert synced.metadata["sync_action"] == "Update"

    assert adapter.rfc.get_system_info()["system_id"] == "MCK"


def test_unknown_function_is_transport_error(mock_sap):
    config = SAPConfig(endpoint=mock_sap, timeout=5)
    connector = SAPConnector(config, _DummyLogger())
    with pytest.raises(SAPTransportError, match="404"):
        connector.call("Z_DOES_NOT_EXIST", {})


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

    def exception(self, *args, **kwargs):
        pass
