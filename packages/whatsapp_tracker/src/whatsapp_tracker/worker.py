"""
Tracker Worker

Long-running `start` process: opens the runtime, starts the session gateway
and feeds its events through the ingestion pipeline until SIGINT/SIGTERM.

Shutdown order:
1. Stop taking new events from the gateway backend
2. Stop the dispatcher and drain events already queued
3. Remove the QR file
4. Destroy the gateway
5. Dispose the database engine

A failing cleanup step is logged and the remaining steps still run.
"""

import asyncio
import logging
import signal

from basecore.settings import Settings

from whatsapp_tracker.gateway.base import SessionGateway, TransportError
from whatsapp_tracker.runtime import TrackerRuntime
from whatsapp_tracker.service.dispatcher import EventDispatcher
from whatsapp_tracker.service.qr_file import remove_qr_file

logger = logging.getLogger(__name__)


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int) -> None:
        logger.info(f"Received signal {signum}, requesting shutdown...")
        stop.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(stop.set))


async def run_worker(
    settings: Settings,
    gateway: SessionGateway | None = None,
    stop: asyncio.Event | None = None,
) -> int:
    """
    Run until stop is set (by a signal or the caller).

    Returns the number of events processed.

    Raises:
        DatabaseUnavailable: the database is unreachable at startup
    """
    stop = stop or asyncio.Event()
    runtime = TrackerRuntime(settings, gateway)
    await runtime.open()

    dispatcher = EventDispatcher(runtime.gateway, runtime.pipeline)
    install_signal_handlers(stop)

    logger.info(
        f"Starting WhatsApp tracker "
        f"(gateway={settings.TRACKER_GATEWAY}, media={settings.MEDIA_PATH})"
    )

    dispatch_task = asyncio.create_task(dispatcher.run())
    stop_task = asyncio.create_task(stop.wait())

    try:
        try:
            await runtime.gateway.initialize()
        except TransportError as e:
            logger.error(f"Session gateway unreachable: {e}")
            stop.set()

        await asyncio.wait({dispatch_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        logger.info("WhatsApp tracker shutting down gracefully")
        stop_task.cancel()
        try:
            await runtime.gateway.stop_receiving()
        except Exception:
            logger.exception("Error stopping the session gateway receiver")

        dispatcher.stop()
        processed = await dispatch_task

        try:
            await remove_qr_file(settings.QR_FILE_PATH)
        except OSError as e:
            logger.warning(f"Could not remove QR file {settings.QR_FILE_PATH}: {e}")

        try:
            await runtime.gateway.destroy()
        except Exception:
            logger.exception("Error destroying the session gateway")
        finally:
            await runtime.close()

    return processed
