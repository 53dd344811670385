#!/usr/bin/env python3
"""
TON Swap Watcher - Main Entry Point

Watches the STON.fi router on TON, decodes swaps, resolves jetton issuers
and pools, prices tokens against the jUSDT/pTON anchor and streams one
record per swap.
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional
import structlog
import click

from config.settings import DISPLAY_FORMATS, Settings, get_settings
from broadcast_server import BroadcastServer
from services.broadcaster import SwapBroadcaster
from services.context import WatcherContext
from services.toncenter_client import TonCenterClient
from services.watcher import SwapWatcherService
from utils.addresses import friendly, parse_address
from utils.exceptions import StartupError
from utils.logging import configure_logging

logger = structlog.get_logger()


class SwapWatcherWorker:
    """Main swap watcher application: watcher service plus broadcast server."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.broadcaster = SwapBroadcaster()
        self.context = WatcherContext.build(self.settings, broadcaster=self.broadcaster)
        self.service = SwapWatcherService(self.context)
        self.server = BroadcastServer(
            self.service,
            self.broadcaster,
            host=self.settings.broadcast_host,
            port=self.settings.broadcast_port
        )
        self._stopping = False

        logger.info("SwapWatcherWorker initialized",
                   settings_log_level=self.settings.log_level,
                   settings_log_format=self.settings.log_format,
                   display=self.settings.display_format,
                   dex=self.settings.dex_address)

    @property
    def is_running(self) -> bool:
        return self.service.is_running

    async def start(self) -> None:
        """Start the watcher and the broadcast server."""
        try:
            logger.info("Starting TON Swap Watcher",
                       broadcast_host=self.settings.broadcast_host,
                       broadcast_port=self.settings.broadcast_port)

            self._setup_signal_handlers()

            watcher_task = asyncio.create_task(self.service.start(), name="watcher")
            server_task = asyncio.create_task(self.server.serve(), name="broadcast-server")

            done, _ = await asyncio.wait(
                [watcher_task, server_task],
                return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

        except StartupError:
            raise
        except asyncio.CancelledError:
            logger.info("Swap watcher cancelled")
        except Exception as e:
            logger.error("Failed to run swap watcher", error=str(e))
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        if self._stopping:
            return
        self._stopping = True

        logger.info("Stopping TON Swap Watcher")
        self.server.shutdown()
        await self.service.stop()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        shutdown_requested = asyncio.Event()

        def signal_handler(signum):
            # Second signal forces exit
            if shutdown_requested.is_set():
                logger.warning("Second shutdown signal received, forcing immediate shutdown",
                             signal=signum)
                sys.exit(1)

            logger.info("Received shutdown signal, initiating graceful shutdown", signal=signum)
            shutdown_requested.set()
            self.server.shutdown()
            asyncio.create_task(self.stop())

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)
        logger.info("Signal handlers configured for graceful shutdown")

    async def health_check(self) -> Dict[str, Any]:
        health = await self.service.health_check()
        health["subscribers"] = self.broadcaster.subscriber_count
        return health


# CLI Commands
@click.group()
def cli():
    """TON Swap Watcher CLI"""
    pass


@cli.command()
@click.option('--log-format', type=click.Choice(['json', 'console']), help='Log output format (overrides SWAPWATCH_LOG_FORMAT)')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), help='Log level (overrides SWAPWATCH_LOG_LEVEL)')
@click.option('--debug', is_flag=True, help='Enable debug logging (same as --log-level DEBUG)')
@click.option('--display', type=click.Choice(list(DISPLAY_FORMATS)), help='Swap record format (overrides SWAPWATCH_DISPLAY_FORMAT)')
@click.option('--host', help='Broadcast server host (overrides SWAPWATCH_BROADCAST_HOST)')
@click.option('--port', type=int, help='Broadcast server port (overrides SWAPWATCH_BROADCAST_PORT)')
def start(log_format: str = None, log_level: str = None, debug: bool = False,
          display: str = None, host: str = None, port: int = None):
    """Start the swap watcher."""
    settings = get_settings()

    if debug:
        effective_log_level = "DEBUG"
    elif log_level:
        effective_log_level = log_level
    else:
        effective_log_level = settings.log_level

    effective_log_format = log_format or settings.log_format

    overrides = {}
    if display:
        overrides["display_format"] = display
    if host:
        overrides["broadcast_host"] = host
    if port:
        overrides["broadcast_port"] = port
    if overrides:
        settings = settings.model_copy(update=overrides)

    try:
        configure_logging(effective_log_level, effective_log_format)
        logger.info("TON Swap Watcher starting",
                   log_format=effective_log_format,
                   log_level=effective_log_level,
                   debug_flag=debug,
                   display=settings.display_format)
    except Exception as e:
        click.echo(f"Logging configuration failed: {e}")
        sys.exit(1)

    worker = SwapWatcherWorker(settings)

    try:
        asyncio.run(worker.start())
    except KeyboardInterrupt:
        logger.info("Swap watcher interrupted by user")
    except StartupError as e:
        logger.error("Swap watcher failed to start", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Swap watcher failed", error=str(e))
        sys.exit(1)


@cli.command()
def config():
    """Show current configuration."""
    settings = get_settings()

    click.echo("=== TON Swap Watcher Configuration ===\n")

    click.echo("Settings:")
    for key, value in settings.model_dump().items():
        if 'url' in key.lower() or 'key' in key.lower():
            # Mask sensitive information
            value = "***masked***"
        click.echo(f"  {key}: {value}")


@cli.command()
def test_connection():
    """Test chain access and the router account."""
    async def test_chain_connection():
        settings = get_settings()
        client = TonCenterClient(settings)
        dex = parse_address(settings.dex_address)

        try:
            await client.connect()

            seqno = await client.get_masterchain_seqno()
            click.echo(f"Connected to TON, masterchain seqno: {seqno}")

            state = await client.get_account_state(dex)
            click.echo(f"Router {friendly(dex)}: active={state.is_active} last_lt={state.last_transaction_lt}")

            return state.is_active

        except Exception as e:
            click.echo(f"Failed to connect: {e}")
            return False
        finally:
            await client.disconnect()

    try:
        success = asyncio.run(test_chain_connection())
        if not success:
            sys.exit(1)
    except Exception as e:
        click.echo(f"Connection test failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--log-format', type=click.Choice(['json', 'console']), default='console', help='Log output format')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), default='INFO', help='Log level')
def test_logging(log_format: str, log_level: str):
    """Test logging configuration."""
    click.echo(f"Testing logging configuration: format={log_format} level={log_level}")

    try:
        configure_logging(log_level, log_format)

        logger = structlog.get_logger("test")
        logger.error("This is an ERROR message", test_type="error_test")
        logger.warning("This is a WARNING message", test_type="warning_test")
        logger.info("This is an INFO message", test_type="info_test")
        logger.debug("This is a DEBUG message", test_type="debug_test")

        click.echo("Logging test completed")
        click.echo("Set SWAPWATCH_LOG_LEVEL and SWAPWATCH_LOG_FORMAT environment variables for defaults")

    except Exception as e:
        click.echo(f"Logging test failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
