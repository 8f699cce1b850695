from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level for the teamy.* logger tree.

    Uvicorn installs the handlers; we only pick the verbosity. Resolver and
    gate decisions are logged at DEBUG, so `TEAMY_LOG_LEVEL=DEBUG` shows why an
    item was hidden.
    """

    normalized = level.upper()
    logging.getLogger("teamy").setLevel(normalized)
    logging.getLogger("teamy").propagate = True
