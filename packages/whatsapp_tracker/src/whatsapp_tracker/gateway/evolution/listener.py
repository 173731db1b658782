"""
Evolution Webhook Listener

FastAPI app that receives Evolution API webhooks and puts the translated
session events on the gateway's inbound queue. Served in-process by uvicorn
so the tracker stays a single process.

Responsibilities:
- Validate the API key (when configured)
- Ignore webhooks for other instances
- Translate and enqueue events
- Return 200 quickly; ingestion happens in the dispatcher, not here
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

import uvicorn
from fastapi import FastAPI, HTTPException, Request

from whatsapp_tracker.gateway.evolution.webhook import (
    extract_instance_name,
    parse_evolution_webhook,
    validate_api_key,
)

if TYPE_CHECKING:
    from whatsapp_tracker.gateway.evolution.client import EvolutionSessionGateway

logger = logging.getLogger(__name__)


def create_webhook_app(gateway: "EvolutionSessionGateway", api_key: str | None = None) -> FastAPI:
    app = FastAPI(
        title="WhatsApp Tracker Webhook",
        description="Receives Evolution API webhooks for the tracker session",
        version="1.0.0",
    )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "whatsapp-tracker-webhook"}

    @app.post("/webhook")
    async def receive_webhook(request: Request):
        body = await request.body()

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON payload")
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if not isinstance(payload, dict):
            logger.warning("Webhook payload is not a JSON object")
            raise HTTPException(status_code=400, detail="Payload must be a JSON object")

        if api_key and not validate_api_key(dict(request.headers), api_key):
            logger.warning("Invalid Evolution API key")
            raise HTTPException(status_code=403, detail="Invalid API key")

        if not gateway.accepting:
            # Evolution redelivers non-2xx webhooks
            raise HTTPException(status_code=503, detail="Tracker is shutting down")

        instance = extract_instance_name(payload)
        if instance and instance != gateway.instance_name:
            logger.debug(f"Ignoring webhook for instance {instance}")
            return {"status": "ignored", "reason": "other_instance"}

        events = parse_evolution_webhook(payload)
        for event in events:
            gateway.publish(event)

        logger.debug(
            f"Accepted webhook",
            extra={"event": payload.get("event"), "events": len(events)},
        )

        return {"status": "accepted", "events": len(events)}

    return app


class ListenerServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the tracker worker."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class WebhookListener:
    """Runs the webhook app on uvicorn inside the current event loop."""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.host = host
        self.port = port
        self._server = ListenerServer(
            uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="off")
        )
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._server.serve())
        logger.info(f"Webhook listener on http://{self.host}:{self.port}/webhook")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
