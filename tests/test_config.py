import pytest
import yaml

from config import AdapterConfig, config_from_dict, generate_default_config, load_config, save_config


def test_load_config_reads_sections(tmp_path):
    path = tmp_path / "sap_adapter.yaml"
    path.write_text(yaml.safe_dump({
        "name": "Adapter Test",
        "max_retries": 5,
        "sap": {
            "endpoint": "https://sap.example.com",
            "client": "300",
            "company_code": "2000",
            "auth": {"type": "basic", "username": "u", "password": "p"},
            "builders": {"material_create": "sap_adapter.builders_examples:material_with_plant_view"},
        },
        "push_channel": {"tenant_id": "acme", "qos": 2},
        "webhook": {"port": 9000, "secret": "k", "max_body_size": 2048},
        "logging": {"level": "DEBUG", "file_enabled": False},
    }))

    config = load_config(str(path))

    assert config.name == "Adapter Test"
    assert config.max_retries == 5
    assert config.sap.client == "300"
    assert config.sap.auth.username == "u"
    assert config.sap.builders["material_create"].endswith(":material_with_plant_view")
    assert config.push_channel.tenant_id == "acme"
    assert config.webhook.port == 9000
    assert config.webhook.max_body_size == 2048
    assert config.logging.level == "DEBUG"


def test_missing_file_raises():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/sap_adapter.yaml")


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config = load_config(str(path))
    assert config.sap.company_code == "1000"
    assert config.push_channel.topic_prefix == "integration/events"


@pytest.mark.parametrize("override", [
    {"sap": {"auth": {"type": "kerberos"}}},
    {"sap": {"auth": {"type": "oauth2", "client_id": "x"}}},
    {"sap": {"company_code": ""}},
    {"push_channel": {"qos": 3}},
    {"push_channel": {"topic_prefix": "events/#"}},
    {"push_channel": {"tenant_id": "acme/+"}},
    {"push_channel": {"tenant_id": "#"}},
    {"webhook": {"max_body_size": 0}},
    {"webhook": {"port": 70000}},
    {"webhook": {"signature_algorithm": "md5"}},
    {"sap": {"builders": {"material_create": "nomodule"}}},
])
def test_invalid_values_are_rejected(override):
    with pytest.raises(ValueError):
        config_from_dict(override)


def test_save_and_reload_roundtrip(tmp_path):
    path = tmp_path / "saved.yaml"
    save_config(AdapterConfig(), str(path))
    reloaded = load_config(str(path))
    assert reloaded == AdapterConfig()


def test_generate_default_config(tmp_path):
    path = tmp_path / "default.yaml"
    config = generate_default_config(str(path))
    assert path.exists()
    assert load_config(str(path)).sap.plant == config.sap.plant == "1000"
