"""Pasarela RFC SAP simulada para pruebas locales."""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict

_LOCK = threading.Lock()
_MATERIALS: Dict[str, Dict[str, Any]] = {}
_CUSTOMERS: Dict[str, Dict[str, Any]] = {}
_PENDING_COMMITS = {"count": 0}


def _message(msg_type: str, msg_id: str, number: str, text: str) -> Dict[str, str]:
    return {"TYPE": msg_type, "ID": msg_id, "NUMBER": number, "MESSAGE": text}


def _material_savedata(params: Dict[str, Any]) -> Dict[str, Any]:
    material = str(params.get("HEADDATA", {}).get("MATERIAL", ""))
    if not material:
        return {"RETURN": _message("E", "M3", "002", "Material number missing")}
    with _LOCK:
        existing = _MATERIALS.get(material, {})
        existing.update(params.get("CLIENTDATA", {}))
        _MATERIALS[material] = existing
        _PENDING_COMMITS["count"] += 1
    return {"RETURN": _message("S", "MM", "356", f"Material {material} saved")}


def _material_get_detail(params: Dict[str, Any]) -> Dict[str, Any]:
    material = str(params.get("MATERIAL", ""))
    with _LOCK:
        data = _MATERIALS.get(material)
    if data is None:
        return {"RETURN": _message("E", "M3", "305", f"Material {material} does not exist")}
    return {"MATERIAL_GENERAL_DATA": data, "RETURN": _message("S", "MM", "000", "OK")}


def _customer_create(params: Dict[str, Any]) -> Dict[str, Any]:
    customer = str(params.get("PI_CUSTOMER") or len(_CUSTOMERS) + 1)
    with _LOCK:
        if customer in _CUSTOMERS:
            return {"RETURN": _message("E", "F2", "017", f"Customer {customer} already exists")}
        _CUSTOMERS[customer] = dict(params.get("PI_PERSONALDATA", {}))
        _PENDING_COMMITS["count"] += 1
    return {"CUSTOMERNO": customer, "CUSTOMER": customer, "RETURN": _message("S", "F2", "000", "Created")}


def _customer_change(params: Dict[str, Any]) -> Dict[str, Any]:
    customer = str(params.get("CUSTOMERNO", ""))
    with _LOCK:
        if customer not in _CUSTOMERS:
            return {"RETURN": _message("E", "F2", "163", f"Customer {customer} does not exist")}
        _CUSTOMERS[customer].update(params.get("PI_PERSONALDATA", {}))
        _PENDING_COMMITS["count"] += 1
    return {"CUSTOMER": customer, "RETURN": _message("S", "F2", "056", "Changed")}


def _customer_get_detail(params: Dict[str, Any]) -> Dict[str, Any]:
    customer = str(params.get("CUSTOMERNO", ""))
    with _LOCK:
        data = _CUSTOMERS.get(customer)
    if data is None:
        return {"RETURN": _message("E", "F2", "163", f"Customer {customer} does not exist")}
    return {"CUSTOMERADDRESS": data, "RETURN": _message("S", "F2", "000", "OK")}


def _commit(params: Dict[str, Any]) -> Dict[str, Any]:
    with _LOCK:
        _PENDING_COMMITS["count"] = 0
    return {"RETURN": {}}


def _system_info(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "RFCSI_EXPORT": {
            "RFCSYSID": "MCK",
            "RFCHOST": "mock-sap",
            "RFCDBSYS": "HDB",
            "RFCSAPRL": "757",
            "RFCMANDT": "100",
        }
    }


FUNCTIONS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "BAPI_MATERIAL_SAVEDATA": _material_savedata,
    "BAPI_MATERIAL_GET_DETAIL": _material_get_detail,
    "BAPI_CUSTOMER_CREATEFROMDATA1": _customer_create,
    "BAPI_CUSTOMER_CHANGEFROMDATA1": _customer_change,
    "BAPI_CUSTOMER_GETDETAIL2": _customer_get_detail,
    "BAPI_TRANSACTION_COMMIT": _commit,
    "RFC_SYSTEM_INFO": _system_info,
}


class MockSAPHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def _send_json(self, status: int, payload: Dict[str, Any]):
        body = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self):  # noqa: N802
        path = self.path.split('?', 1)[0].strip('/')
        prefix, _, function_name = path.partition('/')
        handler = FUNCTIONS.get(function_name) if prefix == "rfc" else None
        if handler is None:
            self._send_json(404, {"error": f"Función no disponible: {function_name or path}"})
            return

        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length) if length else b"{}"
        try:
            params = json.loads(body.decode())
        except json.JSONDecodeError:
            self._send_json(400, {"error": "JSON inválido"})
            return
        self._send_json(200, handler(params))

    def log_message(self, format, *args):  # noqa: A003
        return


def run_mock_server(host: str = "0.0.0.0", port: int = 8088):
    server = ThreadingHTTPServer((host, port), MockSAPHandler)
    print(f"Mock SAP RFC escuchando en http://{host}:{port}/rfc/<FUNCION>")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    run_mock_server()
