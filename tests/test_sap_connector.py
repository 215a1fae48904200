import pytest
import requests
import requests_mock

from config import SAPAuthConfig, SAPConfig
from sap_adapter.exceptions import SAPTransportError
from sap_adapter.sap_connector import SAPConnector


def build_config(auth=None):
    return SAPConfig(
        enabled=True,
        endpoint="https://sap.example.com/api/",
        client="200",
        auth=auth or SAPAuthConfig(type="basic", username="user", password="pass"),
    )


def test_call_posts_parameters_to_rfc_path():
    connector = SAPConnector(build_config(), _DummyLogger())
    with requests_mock.Mocker() as m:
        m.post(
            "https://sap.example.com/api/rfc/BAPI_MATERIAL_SAVEDATA",
            json={"RETURN": [{"TYPE": "S", "MESSAGE": "ok"}]},
        )
        response = connector.call("BAPI_MATERIAL_SAVEDATA", {"HEADDATA": {"MATERIAL": "MAT001"}})
        assert response["RETURN"][0]["TYPE"] == "S"
        assert m.last_request.json() == {"HEADDATA": {"MATERIAL": "MAT001"}}
        assert m.last_request.headers["sap-client"] == "200"
        assert m.last_request.headers["Authorization"].startswith("Basic ")


def test_non_2xx_raises_transport_error():
    connector = SAPConnector(build_config(), _DummyLogger())
    with requests_mock.Mocker() as m:
        m.post("https://sap.example.com/api/rfc/RFC_SYSTEM_INFO", status_code=503, text="down")
        with pytest.raises(SAPTransportError, match="503"):
            connector.call("RFC_SYSTEM_INFO", {})


def test_network_error_raises_transport_error():
    connector = SAPConnector(build_config(), _DummyLogger())
    with requests_mock.Mocker() as m:
        m.post("https://sap.example.com/api/rfc/RFC_SYSTEM_INFO", exc=requests.ConnectionError("refused"))
        with pytest.raises(SAPTransportError, match="refused"):
            connector.call("RFC_SYSTEM_INFO", {})


def test_non_json_body_raises_transport_error():
    connector = SAPConnector(build_config(), _DummyLogger())
    with requests_mock.Mocker() as m:
        m.post("https://sap.example.com/api/rfc/RFC_SYSTEM_INFO", text="<html></html>")
        with pytest.raises(SAPTransportError):
            connector.call("RFC_SYSTEM_INFO", {})


def test_oauth2_token_is_cached():
    auth = SAPAuthConfig(
        type="oauth2",
        token_url="https://login.example.com/token",
        client_id="id",
        client_secret="secret",
    )
    connector = SAPConnector(build_config(auth), _DummyLogger())
    with requests_mock.Mocker() as m:
        token = m.post("https://login.example.com/token", json={"access_token": "abc", "expires_in": 3600})
        m.post("https://sap.example.com/api/rfc/RFC_SYSTEM_INFO", json={})
        connector.call("RFC_SYSTEM_INFO", {})
        connector.call("RFC_SYSTEM_INFO", {})
        assert token.call_count == 1
        assert m.last_request.headers["Authorization"] == "Bearer abc"


class _DummyLogger:
    def getChild(self, name):  # noqa: D401
        return self

    def warning(self, *args, **kwargs):
        pass

    def error(self, *args, **kwargs):
        pass
