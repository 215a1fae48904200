# config.py
"""
Configuración del adaptador de eventos SAP
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import colorlog
import yaml
import os

@dataclass
class SAPAuthConfig:
    """Autenticación para SAP"""
    type: str = "basic"  # basic, oauth2
    username: Optional[str] = None
    password: Optional[str] = None
    token_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scope: Optional[str] = None

@dataclass
class SAPConfig:
    """Conexión con la pasarela RFC de SAP y contexto de mandante"""
    enabled: bool = True
    endpoint: str = "http://localhost:8088"
    timeout: int = 30
    client: str = "100"
    company_code: str = "1000"
    plant: Optional[str] = None
    warehouse: Optional[str] = None
    language: str = "EN"
    physical_delete: bool = False
    auth: SAPAuthConfig = field(default_factory=SAPAuthConfig)

    # Constructores personalizados: builder_id -> "modulo:funcion"
    builders: Dict[str, str] = field(default_factory=dict)

@dataclass
class PushChannelConfig:
    """Canal push del hub de eventos (broker MQTT)"""
    enabled: bool = True
    broker_host: str = "localhost"
    broker_port: int = 1883
    client_id: str = "sap_event_adapter"
    username: Optional[str] = None
    password: Optional[str] = None
    keep_alive: int = 60
    qos: int = 1
    tls_enabled: bool = False
    ca_cert: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    topic_prefix: str = "integration/events"
    tenant_id: str = "default"
    publish_results: bool = True
    reconnect_delay: int = 5
    max_reconnect_delay: int = 60

@dataclass
class WebhookConfig:
    """Servidor HTTP de webhooks"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8090
    secret: Optional[str] = None
    signature_algorithm: str = "sha256"
    request_timeout: int = 30
    max_body_size: int = 1024 * 1024  # bytes

@dataclass
class LoggingConfig:
    """Configuración de logging"""
    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    file_enabled: bool = True
    file_path: str = "logs/sap_adapter.log"
    file_rotation: str = "daily"  # daily, size, none
    file_retention_days: int = 30
    console_enabled: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Logging específico por módulo
    module_levels: Dict[str, str] = field(default_factory=lambda: {
        'sap_adapter.sap': 'INFO',
        'sap_adapter.webhook': 'INFO',
        'sap_adapter.push': 'INFO',
    })

@dataclass
class AdapterConfig:
    """Configuración general del adaptador"""
    sap: SAPConfig = field(default_factory=SAPConfig)
    push_channel: PushChannelConfig = field(default_factory=PushChannelConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    name: str = "SAP Event Adapter"
    description: str = "Adaptador de eventos de integración hacia BAPIs SAP"
    version: str = "1.0.0"
    max_retries: int = 3
    queue_size: int = 1000

_SECTIONS = ('sap', 'push_channel', 'webhook', 'logging')

def load_config(config_file: str = "sap_adapter.yaml") -> AdapterConfig:
    """Carga la configuración desde un archivo YAML con validación"""

    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Archivo de configuración no encontrado: {config_file}")

    with open(config_file, 'r') as f:
        config_dict = yaml.safe_load(f) or {}

    return config_from_dict(config_dict)

def config_from_dict(config_dict: Dict[str, Any]) -> AdapterConfig:
    """Construye y valida un AdapterConfig a partir de un diccionario"""
    # Configuración SAP
    sap_dict = dict(config_dict.get('sap') or {})
    auth_config = SAPAuthConfig(**(sap_dict.pop('auth', None) or {}))
    sap_config = SAPConfig(auth=auth_config, **sap_dict)

    push_config = PushChannelConfig(**(config_dict.get('push_channel') or {}))
    webhook_config = WebhookConfig(**(config_dict.get('webhook') or {}))
    logging_config = LoggingConfig(**(config_dict.get('logging') or {}))

    adapter_config = AdapterConfig(
        sap=sap_config,
        push_channel=push_config,
        webhook=webhook_config,
        logging=logging_config,
        **{k: v for k, v in config_dict.items() if k not in _SECTIONS}
    )

    _validate_config(adapter_config)
    return adapter_config

def _validate_config(config: AdapterConfig):
    """Valida la configuración del adaptador"""
    sap = config.sap
    if sap.enabled and not sap.endpoint:
        raise ValueError("SAP habilitado sin endpoint")
    if not sap.client or not sap.company_code:
        raise ValueError("SAP requiere mandante (client) y sociedad (company_code)")
    if sap.timeout <= 0:
        raise ValueError(f"Timeout SAP inválido: {sap.timeout}")

    auth_type = sap.auth.type.lower()
    if auth_type not in ('basic', 'oauth2'):
        raise ValueError(f"Tipo de autenticación SAP inválido '{sap.auth.type}'")
    if auth_type == 'oauth2' and not (sap.auth.token_url and sap.auth.client_id and sap.auth.client_secret):
        raise ValueError("OAuth2 requiere token_url, client_id y client_secret")

    for builder_id, path in sap.builders.items():
        if not path or (':' not in path and '.' not in path):
            raise ValueError(f"Constructor SAP inválido '{path}' para {builder_id}")

    push = config.push_channel
    if push.qos not in (0, 1, 2):
        raise ValueError(f"QoS MQTT inválido: {push.qos}")
    if push.enabled and not push.tenant_id:
        raise ValueError("El canal push requiere tenant_id")
    if '#' in push.topic_prefix or '+' in push.topic_prefix:
        raise ValueError(f"Prefijo de topic inválido '{push.topic_prefix}'")
    if '#' in push.tenant_id or '+' in push.tenant_id:
        raise ValueError(f"tenant_id inválido '{push.tenant_id}'")

    webhook = config.webhook
    if not 0 < webhook.port < 65536:
        raise ValueError(f"Puerto de webhook inválido: {webhook.port}")
    if webhook.signature_algorithm not in ('sha1', 'sha256', 'sha512'):
        raise ValueError(f"Algoritmo de firma inválido '{webhook.signature_algorithm}'")
    if webhook.max_body_size <= 0:
        raise ValueError(f"max_body_size inválido: {webhook.max_body_size}")

    if config.max_retries < 0:
        raise ValueError(f"max_retries inválido: {config.max_retries}")
    if config.queue_size <= 0:
        raise ValueError(f"queue_size inválido: {config.queue_size}")

    if not push.enabled and not webhook.enabled:
        logging.warning("Ni el canal push ni el webhook están habilitados: no se recibirán eventos")

def setup_logging(config: LoggingConfig = None):
    """Configura el sistema de logging con opciones avanzadas"""
    if config is None:
        config = LoggingConfig()

    # Crear directorio de logs si no existe
    if config.file_enabled:
        log_dir = os.path.dirname(config.file_path)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

    handlers = []

    # Console handler con colores
    if config.console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(colorlog.ColoredFormatter(
            f"%(log_color)s{config.format}",
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        ))
        handlers.append(console_handler)

    # File handler con rotación
    if config.file_enabled:
        if config.file_rotation == 'daily':
            from logging.handlers import TimedRotatingFileHandler
            file_handler = TimedRotatingFileHandler(
                config.file_path,
                when='midnight',
                interval=1,
                backupCount=config.file_retention_days
            )
        elif config.file_rotation == 'size':
            from logging.handlers import RotatingFileHandler
            file_handler = RotatingFileHandler(
                config.file_path,
                maxBytes=10*1024*1024,  # 10MB
                backupCount=5
            )
        else:
            file_handler = logging.FileHandler(config.file_path)

        file_handler.setFormatter(logging.Formatter(config.format))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, config.level),
        handlers=handlers,
        force=True
    )

    for module, level in config.module_levels.items():
        logging.getLogger(module).setLevel(getattr(logging, level))

    return logging.getLogger("sap_adapter")

def save_config(config: AdapterConfig, config_file: str = "sap_adapter.yaml"):
    """Guarda la configuración en un archivo YAML"""
    import dataclasses

    def dataclass_to_dict(obj):
        """Convierte dataclass a diccionario recursivamente"""
        if dataclasses.is_dataclass(obj):
            return {
                field.name: dataclass_to_dict(getattr(obj, field.name))
                for field in dataclasses.fields(obj)
                if not field.name.startswith('_')
            }
        elif isinstance(obj, list):
            return [dataclass_to_dict(item) for item in obj]
        elif isinstance(obj, dict):
            return {key: dataclass_to_dict(value) for key, value in obj.items()}
        else:
            return obj

    config_dict = dataclass_to_dict(config)

    with open(config_file, 'w') as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

def generate_default_config(config_file: str = "sap_adapter_default.yaml"):
    """Genera un archivo de configuración por defecto con todas las opciones"""
    default_config = AdapterConfig(
        sap=SAPConfig(
            plant="1000",
            warehouse="0001",
            builders={
                'material_create': 'sap_adapter.builders_examples:material_with_plant_view',
            },
        ),
    )

    save_config(default_config, config_file)
    print(f"Configuración por defecto generada: {config_file}")

    return default_config
