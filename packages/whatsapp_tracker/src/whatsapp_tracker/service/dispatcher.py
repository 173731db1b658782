"""
Event Dispatcher

Single loop that pulls session events off the gateway queue and hands them
to the ingestion pipeline, one at a time, in arrival order.

Shutdown:
- stop() closes the gateway stream; events queued before it are drained
- cancelling the run task lets the in-flight event finish first
"""

import asyncio
import logging

from whatsapp_tracker.gateway.base import SessionGateway
from whatsapp_tracker.service.ingestion import IngestionPipeline

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(self, gateway: SessionGateway, pipeline: IngestionPipeline):
        self.gateway = gateway
        self.pipeline = pipeline
        self.processed = 0
        self._stopping = False

    async def run(self) -> int:
        """Process events until the stream closes. Returns the number handled."""
        logger.info("Event dispatcher started")

        while True:
            event = await self.gateway.next_event()
            if event is None:
                break

            # Shield so a cancel never interrupts a step mid-write
            task = asyncio.ensure_future(self._handle(event))
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                logger.info("Dispatcher cancelled, finishing in-flight event")
                await task
                raise

        logger.info(f"Event dispatcher stopped after {self.processed} events")
        return self.processed

    async def _handle(self, event) -> None:
        try:
            result = await self.pipeline.handle_event(event)
        except Exception as e:
            logger.error(
                f"Failed to process {event.event_type} event {event.event_id}: {e}",
                exc_info=True,
            )
            return

        self.processed += 1
        if result is not None:
            logger.debug(
                f"Processed message event",
                extra={"message_id": result.message_id, "errors": result.errors},
            )

    def stop(self) -> None:
        """Ask the loop to exit once everything queued so far is handled."""
        if self._stopping:
            return
        self._stopping = True
        self.gateway.close_stream()
