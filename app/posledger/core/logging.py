from __future__ import annotations

import json
import logging

from app.posledger.core.config import settings


def configure_logging() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(message)s")


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
