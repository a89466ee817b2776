"""Process-wide logging setup. Call once from the embedding application."""

from __future__ import annotations

import logging

from audit_assistant.core.config import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: int | None = None) -> None:
    logging.basicConfig(
        level=level if level is not None else (logging.DEBUG if settings.debug else logging.INFO),
        format=_LOG_FORMAT,
    )
    # Third-party clients are chatty at DEBUG
    for noisy in ("botocore", "aiobotocore", "httpx", "httpcore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
