"""
Logging setup shared by the CLI and the worker.
"""

import logging
import sys

from rich.logging import RichHandler

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger.

    Interactive terminals get rich output; anything else (process managers,
    containers) gets plain timestamped lines on stderr.
    """
    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = []

    if sys.stderr.isatty():
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    # Webhook access lines are noise next to the ingestion logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root
