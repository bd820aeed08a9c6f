"""Logging setup shared by the game server, the websocket client and tests."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from logging.config import dictConfig
from typing import Dict, Iterator, List, Optional, Tuple

BASE_LOGGER_NAME = "royale"

# Identifiers copied onto every record, "-" while unbound.
_CONTEXT_VARS: Dict[str, ContextVar[str]] = {
    "player_id": ContextVar("player_id", default="-"),
    "board_id": ContextVar("board_id", default="-"),
}

# The game ticker fires several times a second; APScheduler logs each run at INFO.
_QUIET_LOGGERS = ("apscheduler", "uvicorn.access")


class SessionContextFilter(logging.Filter):
    """Attach the bound player and board identifiers to log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - logging API
        for field, var in _CONTEXT_VARS.items():
            if not hasattr(record, field):
                setattr(record, field, var.get())
        return True


def configure_logging(level: int | str = "INFO") -> None:
    """Configure root logging through :func:`logging.config.dictConfig`."""

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "session": {
                    "()": "utils.logging_config.SessionContextFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s [player=%(player_id)s board=%(board_id)s] %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["session"],
                    "level": level,
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {
                "handlers": ["console"],
                "level": level,
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``royale`` namespace."""

    if name.startswith(BASE_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{BASE_LOGGER_NAME}.{name}")


@contextmanager
def logging_context(*, player_id: Optional[str] = None, board_id: Optional[str] = None) -> Iterator[None]:
    """Bind player and board identifiers to records logged inside the block.

    ``None`` leaves the enclosing binding in place.
    """

    values = {"player_id": player_id, "board_id": board_id}
    tokens: List[Tuple[ContextVar[str], Token[str]]] = [
        (_CONTEXT_VARS[field], _CONTEXT_VARS[field].set(str(value)))
        for field, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


__all__ = ["BASE_LOGGER_NAME", "SessionContextFilter", "configure_logging", "get_logger", "logging_context"]
