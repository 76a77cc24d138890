from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any


APP_LOGGER = "companytinder"

_TOKEN_RE = re.compile(r"(ya29\.[0-9A-Za-z\-_]+|1//[0-9A-Za-z\-_]+)")
_SECRET_KEYS = {"access_token", "refresh_token", "token", "client_secret", "code", "raw"}


def _redact(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        v = _TOKEN_RE.sub("[REDACTED_TOKEN]", value)
        # avoid dumping whole message bodies
        if len(v) > 2000:
            return v[:2000] + "...[TRUNCATED]"
        return v
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items() if str(k).lower() not in _SECRET_KEYS}
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


def get_logger(name: str) -> logging.Logger:
    """Child of the app logger, so it shares the handler built by Logger."""
    return logging.getLogger(f"{APP_LOGGER}.{name}")


@dataclass(frozen=True)
class Logger:
    name: str = APP_LOGGER
    level: int = logging.INFO

    def build(self) -> logging.Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(self.level)
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("[%(levelname)s] %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.propagate = False
        return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(_redact(payload), ensure_ascii=False, default=str))
