import configparser

import pytest
from pydantic import ValidationError

from levelfetch.exceptions import ConfigurationError
from levelfetch.models.config import DEFAULT_API_BASE, AppSettings
from levelfetch.models.request import AuthMode, OutputFormat, TaskRequest
from levelfetch.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "levelfetch" / "config.ini"


def test_missing_file_uses_defaults(config_file):
    settings = ConfigManager(config_file).load_settings()

    assert settings.api_base == DEFAULT_API_BASE
    assert settings.retries == 3
    assert settings.request_interval_ms == 1000
    assert settings.output_format is OutputFormat.ADX
    assert settings.config_path == str(config_file.parent)
    assert not config_file.exists()


def test_saved_config_round_trips(config_file):
    manager = ConfigManager(config_file)
    manager.save_new_config(
        {"connect_sid": "sid-1", "key": "K-9", "output_dir": "/data/levels"}
    )

    settings = ConfigManager(config_file).load_settings()

    assert settings.connect_sid == "sid-1"
    assert settings.key == "K-9"
    assert settings.output_dir == "/data/levels"
    assert settings.auth_mode is AuthMode.KEY


def test_cli_options_override_file(config_file):
    ConfigManager(config_file).save_new_config({"retries": 5})

    settings = ConfigManager(config_file).load_settings(
        {"retries": 2, "output_format": "ZIP"}
    )

    assert settings.retries == 2
    assert settings.output_format is OutputFormat.ZIP


def test_missing_keys_are_migrated(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[DEFAULT]\nconnect_sid = abc\n", encoding="utf-8")

    settings = ConfigManager(config_file).load_settings()

    assert settings.connect_sid == "abc"
    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_file, encoding="utf-8")
    assert parser["DEFAULT"]["retries"] == "3"
    assert parser["DEFAULT"]["auto_bundle"] == "false"
    assert parser["DEFAULT"]["connect_sid"] == "abc"


def test_percent_signs_survive(config_file):
    ConfigManager(config_file).save_new_config({"connect_sid": "s%3Aabc.def%2F"})

    assert ConfigManager(config_file).load_settings().connect_sid == "s%3Aabc.def%2F"


@pytest.mark.parametrize(
    "body",
    [
        "[DEFAULT]\nretries = 0\n",
        "[DEFAULT]\nretries = many\n",
        "[DEFAULT]\nrequest_interval_ms = -5\n",
        "[DEFAULT]\napi_base = ftp://example.com\n",
        "[DEFAULT]\nauto_bundle = perhaps\n",
        "this is not an ini file",
    ],
)
def test_invalid_files_raise_configuration_error(config_file, body):
    config_file.parent.mkdir(parents=True)
    config_file.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_settings()


def test_api_base_trailing_slash_is_removed():
    assert AppSettings(api_base="http://localhost:8080/api/").api_base == (
        "http://localhost:8080/api"
    )


def test_task_request_accepts_camel_case():
    request = TaskRequest.model_validate(
        {
            "selectedManifestPaths": ["a/manifest.json"],
            "outputDir": "out",
            "authMode": "CAPTCHA",
            "captcha": "1234",
            "downloadNoBga": False,
            "outputFormat": "zip",
            "bundleOutputPath": "",
        }
    )

    assert request.auth_mode is AuthMode.CAPTCHA
    assert request.variant == "bga"
    assert request.payload_ext == "zip"
    assert request.bundle_output_path is None
    assert request.retries == 3
    assert request.request_interval_ms == 1000


def test_task_request_defaults():
    request = TaskRequest(output_dir="out")

    assert request.selected_manifest_paths == []
    assert request.variant == "nobga"
    assert request.payload_ext == "adx"
    assert request.auto_bundle is False


@pytest.mark.parametrize(
    "fields",
    [
        {"retries": 0},
        {"request_interval_ms": -1},
        {"auth_mode": "password"},
        {"output_format": "rar"},
    ],
)
def test_task_request_rejects_invalid_values(fields):
    with pytest.raises(ValidationError):
        TaskRequest(output_dir="out", **fields)


def test_task_request_is_frozen():
    request = TaskRequest(output_dir="out")
    with pytest.raises(ValidationError):
        request.retries = 10
