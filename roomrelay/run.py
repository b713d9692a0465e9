"""CLI and serving functions for running a signaling relay server."""
from __future__ import annotations

import asyncio
import datetime
import logging
import logging.handlers
import os
import pprint
import signal
import ssl
import sys
import traceback
from typing import Any
from typing import Callable
from typing import Coroutine

import click
from websockets.asyncio.server import serve as websockets_serve

from roomrelay.config import RelayServingConfig
from roomrelay.server import SignalingServer

logger = logging.getLogger(__name__)


def _exit_on_error(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(
            f'Exception in background task (name="{task.get_name()}"): '
            f'{task.exception()!r}',
        )
        raise SystemExit(1)


def spawn_guarded_background_task(
    coro: Callable[[], Coroutine[Any, Any, None]],
    name: str,
) -> asyncio.Task[None]:
    """Run a coroutine in the background and exit the process if it fails.

    Tasks that are never awaited would otherwise swallow their exceptions,
    so the traceback is logged and the done callback raises `SystemExit`.

    Args:
        coro: Zero argument coroutine function to run as a task.
        name: Name of the task.

    Returns:
        Asyncio task handle.
    """

    async def _run() -> None:
        try:
            await coro()
        except Exception:
            logger.error(traceback.format_exc())
            raise

    task = asyncio.create_task(_run(), name=name)
    task.add_done_callback(_exit_on_error)
    return task


def periodic_room_logger(
    server: SignalingServer,
    interval: float = 60,
    limit: float | None = 32,
    level: int = logging.INFO,
) -> asyncio.Task[None]:
    """Create an asyncio task which logs currently open rooms.

    Args:
        server: Signaling server instance to log rooms of.
        interval: Seconds between logging open rooms.
        limit: Only log detailed room list if the number of rooms is
            less than this number. Useful for debugging or avoiding
            clobbering the logs by printing thousands of rooms.
        level: Logging level.

    Returns:
        Asyncio task.
    """

    async def _log() -> None:
        while True:
            await asyncio.sleep(interval)
            rooms = server.registry.get_rooms()
            message = (
                f'Open rooms: {len(rooms)}, '
                f'connected clients: {len(server.transport)}'
            )
            if limit is not None and 0 < len(rooms) < limit:
                rooms_repr = '\n'.join(
                    f'{room_id}: {", ".join(sorted(members))}'
                    for room_id, members in sorted(rooms.items())
                )
                message = f'{message}\n{rooms_repr}'
            logger.log(level, message)

    return spawn_guarded_background_task(_log, 'relay-server-room-logger')


async def serve(config: RelayServingConfig) -> None:
    """Run the signaling server.

    Initializes a [`SignalingServer`][roomrelay.server.SignalingServer]
    and starts a websocket server listening for new connections
    and incoming messages until SIGINT or SIGTERM is received.

    Note:
        This function will not configure any logging. Configuring logging
        according to
        [`RelayServingConfig.logging`][roomrelay.config.RelayServingConfig]
        is the responsibility of the caller.

    Args:
        config: Serving configuration.
    """
    server = SignalingServer(max_message_bytes=config.max_message_bytes)

    # Set the stop condition when receiving SIGINT (ctrl-C) and SIGTERM.
    loop = asyncio.get_running_loop()
    stop = loop.create_future()
    loop.add_signal_handler(signal.SIGINT, stop.set_result, None)
    loop.add_signal_handler(signal.SIGTERM, stop.set_result, None)

    ssl_context: ssl.SSLContext | None = None
    if config.certfile is not None:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.certfile, keyfile=config.keyfile)

    room_logger_task: asyncio.Task[None] | None = None
    if config.logging.current_room_interval is not None:
        level = (
            config.logging.default_level
            if isinstance(config.logging.default_level, int)
            else logging.getLevelName(config.logging.default_level)
        )
        room_logger_task = periodic_room_logger(
            server,
            config.logging.current_room_interval,
            config.logging.current_room_limit,
            level=level,
        )

    config_repr = pprint.pformat(config, indent=2)
    logger.info(f'Relay serving configuration:\n{config_repr}')

    async with websockets_serve(
        server.handler,
        config.host,
        config.port,
        logger=None,
        ssl=ssl_context,
    ):
        logger.info(f'Relay server listening on port {config.port}')
        logger.info('Use ctrl-C to stop')
        await stop

    if room_logger_task is not None:
        room_logger_task.cancel()
        try:
            await room_logger_task
        except asyncio.CancelledError:
            pass

    loop.remove_signal_handler(signal.SIGINT)
    loop.remove_signal_handler(signal.SIGTERM)

    logger.info('Relay server shutdown')


@click.command()
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option(
    '--port',
    type=int,
    metavar='PORT',
    envvar='PORT',
    help='Port to bind to. Defaults to $PORT if set.',
)
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
def cli(
    config_path: str | None,
    host: str | None,
    port: int | None,
    log_dir: str | None,
    log_level: str | None,
) -> None:
    """Run a signaling relay server instance.

    Browsers use the relay server to find each other in named rooms and to
    exchange the messages needed to establish a peer-to-peer WebRTC
    connection. If no configuration file is provided, a default
    configuration will be created from
    [`RelayServingConfig()`][roomrelay.config.RelayServingConfig].
    The remaining CLI options will override the options provided in the
    configuration object.
    """
    config = (
        RelayServingConfig()
        if config_path is None
        else RelayServingConfig.from_toml(config_path)
    )

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = logging.getLevelName(log_level.upper())

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.log_dir is not None:
        os.makedirs(config.logging.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.logging.log_dir, 'server.log'),
                # Rotate logs Sunday at midnight
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=(
            '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: '
            '%(message)s'
        ),
        datefmt='%Y-%m-%d %H:%M:%S',
        level=config.logging.default_level,
        handlers=handlers,
    )

    logging.getLogger('websockets').setLevel(config.logging.websockets_level)

    asyncio.run(serve(config))
