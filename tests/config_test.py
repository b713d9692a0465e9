from __future__ import annotations

import logging
import pathlib

import pydantic
import pytest

from roomrelay.config import RelayLoggingConfig
from roomrelay.config import RelayServingConfig


def test_logging_config_default() -> None:
    config = RelayLoggingConfig()
    assert config.default_level == logging.INFO
    assert config.websockets_level == logging.WARNING


def test_serving_config_default() -> None:
    config = RelayServingConfig()
    assert config.host is None
    assert config.port == 3000
    assert config.max_message_bytes is None


def test_read_from_config_file_empty(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'relay.toml'
    filepath.write_text('')

    config = RelayServingConfig.from_toml(filepath)
    assert config == RelayServingConfig()


def test_read_from_config_file(tmp_path: pathlib.Path) -> None:
    data = """\
host = "localhost"
port = 1234
certfile = "/path/to/cert.pem"
keyfile = "/path/to/privkey.pem"
max_message_bytes = 65536

[logging]
log_dir = "/path/to/log/dir"
default_level = "DEBUG"
websockets_level = "INFO"
current_room_interval = 3
current_room_limit = 5
"""

    filepath = tmp_path / 'relay.toml'
    with open(filepath, 'w') as f:
        f.write(data)

    config = RelayServingConfig.from_toml(str(filepath))

    assert config.host == 'localhost'
    assert config.port == 1234
    assert config.certfile == '/path/to/cert.pem'
    assert config.keyfile == '/path/to/privkey.pem'
    assert config.max_message_bytes == 65536

    assert config.logging.log_dir == '/path/to/log/dir'
    assert config.logging.default_level == 'DEBUG'
    assert config.logging.websockets_level == 'INFO'
    assert config.logging.current_room_interval == 3
    assert config.logging.current_room_limit == 5


def test_read_from_config_file_strict(tmp_path: pathlib.Path) -> None:
    filepath = tmp_path / 'relay.toml'
    filepath.write_text('port = "3000"\n')

    with pytest.raises(pydantic.ValidationError):
        RelayServingConfig.from_toml(filepath)
