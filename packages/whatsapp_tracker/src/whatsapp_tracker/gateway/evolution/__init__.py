"""Evolution API session gateway."""

from whatsapp_tracker.gateway.evolution.client import EvolutionSessionGateway
from whatsapp_tracker.gateway.evolution.instance_manager import EvolutionInstanceManager
from whatsapp_tracker.gateway.evolution.listener import WebhookListener, create_webhook_app
from whatsapp_tracker.gateway.evolution.webhook import parse_evolution_webhook, validate_api_key

__all__ = [
    "EvolutionSessionGateway",
    "EvolutionInstanceManager",
    "WebhookListener",
    "create_webhook_app",
    "parse_evolution_webhook",
    "validate_api_key",
]
