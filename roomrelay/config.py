"""Relay server configuration file parsing."""

from __future__ import annotations

import logging
import pathlib
import sys

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    import tomllib
    from typing import Self
else:  # pragma: <3.11 cover
    import tomli as tomllib
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import Field


class RelayLoggingConfig(BaseModel):
    """Relay logging configuration.

    Attributes:
        log_dir: Default logging directory.
        default_level: Default logging level for the root logger.
        websockets_level: Log level for the `websockets` logger. Websockets
            logs with much higher frequency so it is suggested to set this
            to `WARNING` or higher.
        current_room_interval: Optional seconds between logging the
            number of currently open rooms and connections.
        current_room_limit: Max threshold for enumerating the
            detailed list of open rooms. If `None`, no detailed
            list will be logged.
    """

    log_dir: str | None = None
    default_level: int | str = logging.INFO
    websockets_level: int | str = logging.WARNING
    current_room_interval: int | None = 60
    current_room_limit: int | None = 32


class RelayServingConfig(BaseModel):
    """Relay serving configuration.

    Attributes:
        host: Network interface the server binds to.
        port: Network port the server binds to.
        certfile: Certificate file (PEM format) use to enable TLS.
        keyfile: Private key file. If not specified, the key will be
            taken from the certfile.
        logging: Logging configuration.
        max_message_bytes: Maximum size in bytes of messages received by
            the relay server.
    """

    host: str | None = None
    port: int = 3000
    certfile: str | None = None
    keyfile: str | None = None
    logging: RelayLoggingConfig = Field(default_factory=RelayLoggingConfig)
    max_message_bytes: int | None = None

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse an TOML config file.

        Example:
            ```toml title="relay.toml"
            host = "0.0.0.0"
            port = 3000
            certfile = "/path/to/cert.pem"
            keyfile = "/path/to/privkey.pem"
            max_message_bytes = 65536

            [logging]
            log_dir = "/path/to/log/dir"
            default_level = "INFO"
            websockets_level = "WARNING"
            current_room_interval = 60
            current_room_limit = 32
            ```

            ```python
            from roomrelay.config import RelayServingConfig

            config = RelayServingConfig.from_toml('relay.toml')
            ```

        Note:
            Omitted values will be set to their defaults.
        """
        with open(filepath, 'rb') as f:
            data = tomllib.load(f)
        return cls.model_validate(data, strict=True)
