"""Conector HTTP hacia la pasarela RFC de SAP."""

import time
from typing import Any, Dict, Optional

import requests

from config import SAPConfig
from sap_adapter.exceptions import SAPTransportError


class SAPConnector:
    """Transporte RFC sobre HTTP: una llamada es un POST a {endpoint}/rfc/{función}."""

    def __init__(self, config: SAPConfig, logger):
        self.config = config
        self.logger = logger.getChild("sap.connector")
        self.session = requests.Session()
        self._token_info: Optional[Dict[str, Any]] = None
        if self.config.auth.type.lower() == "basic" and self.config.auth.username:
            self.session.auth = (
                self.config.auth.username,
                self.config.auth.password,
            )

    def call(self, function_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ejecuta una función remota y devuelve la respuesta decodificada

        Raises:
            SAPTransportError: error de red, status no 2xx o cuerpo no JSON
        """
        url = self._build_url(f"rfc/{function_name}")
        headers = self._build_headers()
        headers["sap-client"] = str(self.config.client)
        try:
            response = self.session.post(
                url,
                json=params,
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise SAPTransportError(f"Error de comunicación con SAP en {function_name}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            self.logger.warning(
                "SAP RFC %s fallo status=%s body=%s", function_name, response.status_code, response.text
            )
            raise SAPTransportError(f"SAP RFC {function_name} respondió status={response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SAPTransportError(f"Respuesta no JSON de SAP en {function_name}") from exc
        if not isinstance(data, dict):
            raise SAPTransportError(f"Respuesta inesperada de SAP en {function_name}: {type(data).__name__}")
        return data

    def close(self):
        self.session.close()

    def _build_url(self, path: str) -> str:
        base = self.config.endpoint.rstrip('/')
        path = (path or '').lstrip('/')
        return f"{base}/{path}" if path else base

    def _build_headers(self) -> Dict[str, str]:
        if self.config.auth.type.lower() == "oauth2":
            token = self._get_oauth_token()
            if token:
                return {"Authorization": f"Bearer {token}"}
        return {}

    def _get_oauth_token(self) -> Optional[str]:
        if self._token_info and self._token_info.get("expires_at", 0) > time.time():
            return self._token_info.get("access_token")
        creds = self.config.auth
        if not creds.token_url or not creds.client_id or not creds.client_secret:
            self.logger.error("OAuth2 mal configurado")
            return None
        try:
            response = self.session.post(
                creds.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": creds.client_id,
                    "client_secret": creds.client_secret,
                    "scope": creds.scope or "",
                },
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
            expires_in = data.get("expires_in", 3600)
            self._token_info = {
                "access_token": data.get("access_token"),
                "expires_at": time.time() + max(30, int(expires_in) - 60),
            }
            return self._token_info["access_token"]
        except requests.RequestException as exc:
            self.logger.error("OAuth2 token error: %s", exc)
        return None
