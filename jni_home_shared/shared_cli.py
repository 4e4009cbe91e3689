#!/usr/bin/env python3
"""
jni-shared - publish to and listen on the home automation MQTT server.

Both commands go through the shared ConnectionManager, so they behave like
the services using it: bounded connect, bounded publish, clean shutdown.
"""

import asyncio
from typing import Optional, Tuple

import click

from .core.connection import ConnectionManager
from .utils.config_manager import ConfigManager
from .utils.exceptions import HomeAutomationError
from .utils.logger import LOG_SETUP_NAME, create_logger
from .utils.validators import validate_timeout

DEFAULT_CONNECT_TIMEOUT_MS = 10000
# Gives the paho network thread time to send before disconnecting
FLUSH_DELAY_SEC = 0.5


def _create_manager(ctx: click.Context, broker: Optional[str], timeout_ms: int) -> ConnectionManager:
    config_manager: ConfigManager = ctx.obj['CONFIG_MANAGER']
    try:
        validate_timeout(timeout_ms)
        broker_url = broker or config_manager.get_broker_url()
        return ConnectionManager(broker_url, logger=ctx.obj['LOGGER'])
    except HomeAutomationError as e:
        raise click.ClickException(str(e))


def _run(coroutine) -> None:
    try:
        asyncio.run(coroutine)
    except KeyboardInterrupt:
        click.echo(click.style("Interrupted", fg='yellow'))
    except HomeAutomationError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option('--log-setup', default=None,
              help=f'Log setup: "prod" or "dev" (defaults to ${LOG_SETUP_NAME})')
@click.option('--env-file', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Environment file to load (defaults to a .env file if one is found)')
@click.pass_context
def main(ctx: click.Context, log_setup: Optional[str], env_file: Optional[str]):
    """
    JNI Home Automation shared MQTT tools.

    Examples:
        jni-shared publish home/test "hello"
        jni-shared --log-setup dev listen home/test home/events --duration 60
    """
    try:
        config_manager = ConfigManager(env_file)
        logger = create_logger(log_setup or config_manager.get_log_setup())
    except HomeAutomationError as e:
        raise click.ClickException(str(e))
    ctx.obj = {
        'CONFIG_MANAGER': config_manager,
        'LOGGER': logger,
    }


@main.command()
@click.argument('topic')
@click.argument('message')
@click.option('--broker', default=None, help='Broker URL (defaults to $MQTT_SERVER_URL)')
@click.option('--timeout-ms', default=DEFAULT_CONNECT_TIMEOUT_MS, type=int, show_default=True,
              help='How long to wait for the connection')
@click.pass_context
def publish(ctx: click.Context, topic: str, message: str, broker: Optional[str], timeout_ms: int):
    """Publish MESSAGE to TOPIC."""
    manager = _create_manager(ctx, broker, timeout_ms)

    async def run():
        try:
            await manager.connect_and_wait(timeout_ms)
            await manager.publish(topic, message)
            await asyncio.sleep(FLUSH_DELAY_SEC)
            click.echo(click.style(f"✓ Published to {topic}", fg='green'))
        finally:
            manager.exit()

    _run(run())


@main.command()
@click.argument('topics', nargs=-1, required=True)
@click.option('--broker', default=None, help='Broker URL (defaults to $MQTT_SERVER_URL)')
@click.option('--timeout-ms', default=DEFAULT_CONNECT_TIMEOUT_MS, type=int, show_default=True,
              help='How long to wait for the connection')
@click.option('--duration', default=0.0, type=float, show_default=True,
              help='Seconds to listen, 0 listens until interrupted')
@click.pass_context
def listen(ctx: click.Context, topics: Tuple[str, ...], broker: Optional[str],
           timeout_ms: int, duration: float):
    """Print messages arriving on one or more TOPICS."""
    manager = _create_manager(ctx, broker, timeout_ms)

    def on_message(message: str, topic: str):
        click.echo(f"{click.style(topic, fg='cyan')}: {message}")

    async def run():
        try:
            await manager.connect_and_wait(timeout_ms)
            for topic in topics:
                await manager.subscribe(topic, on_message)
            click.echo(click.style(f"Listening on {', '.join(topics)}...", fg='green'))
            if duration > 0:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            manager.exit()

    _run(run())


if __name__ == '__main__':
    main()
