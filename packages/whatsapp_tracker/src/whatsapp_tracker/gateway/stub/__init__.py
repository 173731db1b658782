"""Stub session gateway for development and tests."""

from whatsapp_tracker.gateway.stub.client import StubSessionGateway

__all__ = ["StubSessionGateway"]
