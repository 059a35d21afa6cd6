import argparse

import pytest

from headcount.config import (
    ConfigError,
    HeadcountConfig,
    config_to_yaml,
    load_config,
    merge_cli_args,
    validate_config,
)


def test_defaults():
    config = HeadcountConfig()
    assert config.port == 8080
    assert config.sweep_interval == 30
    assert config.session_ttl == 60
    assert config.cors_origin == "*"


def test_load_config_ignores_unknown_keys(tmp_path):
    path = tmp_path / "headcount.yaml"
    path.write_text("port: 9000\nsession_ttl: 120\nbogus: true\n")
    config = load_config(path)
    assert config.port == 9000
    assert config.session_ttl == 120
    assert config.sweep_interval == 30


def test_load_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == HeadcountConfig()


def test_load_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_cli_args_take_precedence():
    config = HeadcountConfig(port=9000, host="127.0.0.1")
    args = argparse.Namespace(port=9100, host=None, session_ttl=5.0)
    merge_cli_args(config, args)
    assert config.port == 9100
    assert config.host == "127.0.0.1"
    assert config.session_ttl == 5.0


def test_validate_normalises_values():
    config = validate_config(HeadcountConfig(port="8081", log_level="debug"))
    assert config.port == 8081
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("kwargs", [
    {"port": 70000},
    {"port": "http"},
    {"sweep_interval": 0},
    {"session_ttl": -1},
    {"log_level": "chatty"},
])
def test_validate_rejects_bad_values(kwargs):
    with pytest.raises(ConfigError):
        validate_config(HeadcountConfig(**kwargs))


def test_yaml_round_trip(tmp_path):
    config = HeadcountConfig(port=9001, session_ttl=90.0)
    path = tmp_path / "out.yaml"
    path.write_text(config_to_yaml(config))
    assert load_config(path) == config


def test_load_rejects_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("port: [1\n")
    with pytest.raises(ConfigError, match="bad.yaml"):
        load_config(path)


@pytest.mark.parametrize("kwargs", [{"host": 5}, {"cors_origin": ["*"]}])
def test_validate_rejects_non_string_addresses(kwargs):
    with pytest.raises(ConfigError, match="must be a string"):
        validate_config(HeadcountConfig(**kwargs))
