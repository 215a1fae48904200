import asyncio
import time

from config import AdapterConfig, PushChannelConfig, SAPConfig, WebhookConfig
from sap_adapter.adapter import EVENT_PROCESSED, SAPAdapter


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

    def names(self):
        return [name for name, _ in self.calls]


def build_adapter(transport, max_retries=3):
    config = AdapterConfig(
        max_retries=max_retries,
        sap=SAPConfig(endpoint="http://sap.test", client="100", company_code="1000", plant="1000"),
        push_channel=PushChannelConfig(enabled=False),
        webhook=WebhookConfig(enabled=False),
    )
    adapter = SAPAdapter(config, transport=transport, logger=_DummyLogger())
    adapter.rfc.connect()
    return adapter


def _event(event_type="Create", entity_type="Product", data=None, event_id="e1"):
    return {
        "eventType": event_type,
        "entityType": entity_type,
        "eventId": event_id,
        "timeStamp": "2024-01-01T00:00:00Z",
        "payload": {"data": data if data is not None else {"id": "MAT001", "name": "Widget", "baseUnit": "EA"}},
    }


def test_create_product_succeeds_with_object_key():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {"RETURN": [{"TYPE": "S", "MESSAGE": "saved"}]}})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event()))

    assert result.success is True
    assert result.operation == "CREATE"
    assert result.metadata["object_key"] == "MAT001"
    assert transport.names() == ["BAPI_MATERIAL_SAVEDATA", "BAPI_TRANSACTION_COMMIT"]
    params = transport.calls[0][1]
    assert params["HEADDATA"]["MATERIAL"] == "MAT001"
    assert params["CLIENTDATA"]["BASE_UOM"] == "EA"


def test_business_error_yields_retryable_failure():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {
        "RETURN": [{"TYPE": "E", "ID": "M3", "NUMBER": "051", "MESSAGE": "Material already exists"}]
    }})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event()))

    assert result.success is False
    assert result.error == "SAP BAPI Error: M3051: Material already exists"
    assert result.retryable is True
    assert transport.names() == ["BAPI_MATERIAL_SAVEDATA"]
    assert adapter.stats["events_failed"] == 1


def test_sync_falls_back_to_create_when_read_fails():
    transport = _FakeTransport(fail_on={"BAPI_MATERIAL_GET_DETAIL"})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event("Sync")))

    assert result.success is True
    assert result.metadata["sync_action"] == "Create"
    assert transport.names() == ["BAPI_MATERIAL_GET_DETAIL", "BAPI_MATERIAL_SAVEDATA", "BAPI_TRANSACTION_COMMIT"]
    assert "MATERIALDESCRIPTION" in transport.calls[1][1]


def test_sync_falls_back_to_create_when_read_reports_error():
    transport = _FakeTransport({"BAPI_MATERIAL_GET_DETAIL": {"RETURN": {"TYPE": "E", "MESSAGE": "not found"}}})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event("Sync")))

    assert result.metadata["sync_action"] == "Create"


def test_sync_updates_when_record_exists():
    transport = _FakeTransport({"BAPI_MATERIAL_GET_DETAIL": {"MATERIAL_GENERAL_DATA": {"MATL_TYPE": "FERT"}}})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event("Sync")))

    assert result.success is True
    assert result.metadata["sync_action"] == "Update"
    update_params = transport.calls[1][1]
    assert "MATERIALDESCRIPTION" not in update_params
    assert update_params["CLIENTDATAX"]["NAME"] == "X"


def test_unknown_event_type_short_circuits():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event("Purge")))

    assert result.success is False
    assert "Purge" in result.error
    assert result.operation == "PROCESS"
    assert result.retryable is False
    assert transport.calls == []
    assert adapter.stats["events_processed"] == 1
    assert adapter.rfc.get_connection_stats()["calls_executed"] == 0


def test_unsupported_entity_operation_makes_no_remote_call():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event("Create", "Inventory", {"id": "S1"})))

    assert result.success is False
    assert result.retryable is False
    assert result.metadata["error_kind"] == "unsupported"
    assert transport.calls == []


def test_commit_failure_still_succeeds():
    transport = _FakeTransport({"BAPI_MATERIAL_SAVEDATA": {"RETURN": []}}, fail_on={"BAPI_TRANSACTION_COMMIT"})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event()))

    assert result.success is True
    assert transport.names() == ["BAPI_MATERIAL_SAVEDATA", "BAPI_TRANSACTION_COMMIT"]


def test_transport_failure_is_retryable():
    transport = _FakeTransport(fail_on={"BAPI_MATERIAL_SAVEDATA"})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.process_event(_event()))

    assert result.success is False
    assert result.retryable is True
    assert result.metadata["error_kind"] == "transport"
    assert adapter.rfc.get_connection_stats()["errors_count"] == 1


def test_delete_sends_deletion_flags_through_update_bapi():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    data = {"id": "C1", "firstName": "Ann", "city": "Oslo"}
    result = asyncio.run(adapter.process_event(_event("Delete", "Customer", data)))

    assert result.success is True
    assert result.operation == "DELETE"
    name, params = transport.calls[0]
    assert name == "BAPI_CUSTOMER_CHANGEFROMDATA1"
    assert params["CUSTOMERNO"] == "C1"
    assert set(params["PI_PERSONALDATA"]) == {"ID", "DELETION_FLAG", "DELETION_DATE"}
    assert params["PI_PERSONALDATA"]["DELETION_FLAG"] == "X"


def test_retry_budget_is_reported_on_failure():
    result = asyncio.run(build_adapter(_FakeTransport(fail_on={"BAPI_MATERIAL_SAVEDATA"})).process_event(_event()))
    assert result.metadata["can_retry"] is True

    exhausted = build_adapter(_FakeTransport(fail_on={"BAPI_MATERIAL_SAVEDATA"}), max_retries=0)
    result = asyncio.run(exhausted.process_event(_event()))
    assert result.retryable is True
    assert result.metadata["can_retry"] is False
    assert exhausted.get_status()["max_retries"] == 0


class _SlowWriteTransport(_FakeTransport):
    def call(self, function_name, params):
        if function_name != "BAPI_TRANSACTION_COMMIT":
            time.sleep(0.01)
        return super().call(function_name, params)


def test_concurrent_events_keep_calls_serialized_and_stats_consistent():
    transport = _SlowWriteTransport()
    adapter = build_adapter(transport)

    async def run_all():
        return await asyncio.gather(*(
            adapter.process_event(_event(data={"id": f"MAT{index:03d}"}, event_id=f"e{index}"))
            for index in range(8)
        ))

    results = asyncio.run(run_all())

    assert all(result.success for result in results)
    names = transport.names()
    assert len(names) == 16
    for write, commit in zip(names[::2], names[1::2]):
        assert write == "BAPI_MATERIAL_SAVEDATA"
        assert commit == "BAPI_TRANSACTION_COMMIT"
    assert adapter.stats["events_processed"] == 8
    assert adapter.stats["events_successful"] == 8
    assert adapter.rfc.get_connection_stats()["calls_executed"] == 16


class _FailingPushChannel:
    def __init__(self):
        self.published = []

    def publish_result(self, result):
        self.published.append(result.event_id)
        raise ValueError("Publish topic cannot contain wildcards")

    def stop(self):
        pass


def test_consumer_survives_publish_errors():
    adapter = build_adapter(_FakeTransport())

    async def scenario():
        await adapter.start()
        adapter.push_channel = _FailingPushChannel()
        adapter.submit_event(_event(event_id="e1"))
        adapter.submit_event(_event(event_id="e2"))
        await asyncio.wait_for(adapter._queue.join(), timeout=5)
        consumer_alive = not adapter._tasks[0].done()
        published = list(adapter.push_channel.published)
        await adapter.stop()
        return consumer_alive, published

    consumer_alive, published = asyncio.run(scenario())

    assert consumer_alive is True
    assert published == ["e1", "e2"]
    assert adapter.stats["events_processed"] == 2


def test_observers_are_notified_and_shielded():
    transport = _FakeTransport()
    adapter = build_adapter(transport)
    seen = []

    def failing(event_name, payload):
        raise RuntimeError("observer down")

    def recording(event_name, payload):
        seen.append((event_name, payload))

    adapter.on_event(failing)
    adapter.on_event(recording)
    result = asyncio.run(adapter.process_event(_event()))

    assert result.success is True
    assert seen[0][0] == EVENT_PROCESSED
    payload = seen[0][1]
    assert payload["result"] is result
    assert payload["sap_record"].sap_key == "MAT001"
    assert payload["integration_event"].status.value == "completed"

    adapter.off_event(recording)
    asyncio.run(adapter.process_event(_event(event_id="e2")))
    assert len(seen) == 1


def test_processing_time_set_once_and_stats_averaged():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    first = asyncio.run(adapter.process_event(_event()))
    asyncio.run(adapter.process_event(_event("Purge", event_id="e2")))

    assert first.processing_time_ms >= 0
    recorded = first.processing_time_ms
    first.set_processing_time(0)
    assert first.processing_time_ms == recorded
    stats = adapter.stats
    assert stats["events_processed"] == 2
    assert stats["events_successful"] == 1
    assert stats["events_failed"] == 1
    assert stats["average_processing_time_ms"] == stats["total_processing_time_ms"] / 2


def test_search_uses_search_bapi_when_registered():
    transport = _FakeTransport({"BAPI_MATERIAL_GETLIST": {"MATNRLIST": [{"MATERIAL": "MAT001"}]}})
    adapter = build_adapter(transport)

    result = asyncio.run(adapter.search_records("Product", {"material": "MAT*"}, limit=10))

    assert result.success is True
    name, params = transport.calls[0]
    assert name == "BAPI_MATERIAL_GETLIST"
    assert params["MAXROWS"] == 10
    assert params["MATNRSELECTION"][0]["MATNR_LOW"] == "MAT*"


def test_search_falls_back_to_read_table():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    asyncio.run(adapter.search_records("Inventory", {"plant": "1000"}, limit=5, offset=10))

    name, params = transport.calls[0]
    assert name == "RFC_READ_TABLE"
    assert params["QUERY_TABLE"] == "MARD"
    assert params["ROWCOUNT"] == 5
    assert params["ROWSKIPS"] == 10
    assert params["OPTIONS"] == [{"TEXT": "PLANT EQ '1000'"}]


def test_health_reports_sap_state():
    transport = _FakeTransport()
    adapter = build_adapter(transport)

    health = asyncio.run(adapter.get_health())
    assert health["status"] == "healthy"

    adapter.rfc.disconnect()
    health = asyncio.run(adapter.get_health())
    assert health["status"] == "degraded"
    assert "SAP connection not established" in health["issues"]


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
