"""
Canal push del hub de eventos sobre MQTT

El cliente se suscribe al grupo del tenant ({topic_prefix}/{tenant_id}),
decodifica cada mensaje JSON y lo entrega al adaptador mediante el callback
on_event, que se invoca desde el hilo de red de paho.
"""

import json
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from config import PushChannelConfig


class PushChannelClient:
    """Cliente MQTT con reconexión automática para recibir eventos de integración"""

    def __init__(self, config: PushChannelConfig, logger, on_event: Callable[[Any], None]):
        self.config = config
        self.logger = logger.getChild("push")
        self.on_event = on_event
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=config.client_id)
        self.connected = False
        self._lock = threading.Lock()
        self._has_connected = False
        self.stats: Dict[str, Any] = {
            "messages_received": 0,
            "messages_invalid": 0,
            "messages_sent": 0,
            "reconnections": 0,
            "last_message_at": None,
        }

        self._setup_client()

    @property
    def events_topic(self) -> str:
        return f"{self.config.topic_prefix.rstrip('/')}/{self.config.tenant_id}"

    @property
    def results_topic(self) -> str:
        return f"{self.events_topic}/results"

    def _setup_client(self):
        """Configura el cliente MQTT"""
        if self.config.username and self.config.password:
            self.client.username_pw_set(self.config.username, self.config.password)

        if self.config.tls_enabled:
            self.client.tls_set(
                ca_certs=self.config.ca_cert,
                certfile=self.config.client_cert,
                keyfile=self.config.client_key
            )

        self.client.reconnect_delay_set(
            min_delay=self.config.reconnect_delay,
            max_delay=self.config.max_reconnect_delay,
        )

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback de conexión MQTT"""
        if reason_code.is_failure:
            self.logger.error("Error de conexión MQTT, código: %s", reason_code)
            return
        self.connected = True
        with self._lock:
            if self._has_connected:
                self.stats["reconnections"] += 1
            self._has_connected = True
        self.logger.info(
            "Conectado al broker MQTT %s:%s", self.config.broker_host, self.config.broker_port
        )
        # La suscripción se repite en cada reconexión
        self.client.subscribe(self.events_topic, self.config.qos)
        self.logger.info("Suscrito al grupo del tenant: %s", self.events_topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False
        if reason_code.is_failure:
            self.logger.warning("Desconexión inesperada del broker MQTT, código: %s", reason_code)

    def _on_message(self, client, userdata, msg):
        """Decodifica el evento y lo entrega al adaptador"""
        try:
            payload = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            with self._lock:
                self.stats["messages_invalid"] += 1
            self.logger.error("Mensaje no JSON en %s: %s", msg.topic, exc)
            return

        with self._lock:
            self.stats["messages_received"] += 1
            self.stats["last_message_at"] = datetime.now(timezone.utc).isoformat()
        self.logger.debug("Evento recibido en %s", msg.topic)
        try:
            self.on_event(payload)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Error entregando evento de %s: %s", msg.topic, exc)

    def start(self) -> bool:
        """Conecta en segundo plano; paho reintenta la conexión si se pierde"""
        try:
            self.client.connect_async(
                self.config.broker_host,
                self.config.broker_port,
                self.config.keep_alive
            )
            self.client.loop_start()
            return True
        except (OSError, ValueError) as exc:
            self.logger.error("Error conectando al broker MQTT: %s", exc)
            return False

    def stop(self):
        self.client.disconnect()
        self.client.loop_stop()
        self.connected = False
        self.logger.info("Desconectado del broker MQTT")

    def is_connected(self) -> bool:
        return self.connected

    def publish_result(self, result, qos: Optional[int] = None) -> bool:
        """Publica el resultado de un evento en {grupo}/results"""
        if not self.config.publish_results:
            return False
        if not self.connected:
            self.logger.warning("No conectado al broker MQTT; resultado %s no publicado", result.event_id)
            return False

        info = self.client.publish(
            self.results_topic,
            json.dumps(result.to_wire(), default=str),
            qos=self.config.qos if qos is None else qos,
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Error publicando resultado en MQTT: %s", info.rc)
            return False
        with self._lock:
            self.stats["messages_sent"] += 1
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self.stats)
        stats["connected"] = self.connected
        stats["topic"] = self.events_topic
        return stats
