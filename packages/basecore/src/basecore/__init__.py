"""Shared infrastructure: settings, database engine, logging."""
