from logging.config import dictConfig
import logging

from pscore.config.settings import LOG_LEVEL

_configured = False

def _logging_dict(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s",
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "detailed",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"level": level, "handlers": ["stdout"]},
        "loggers": {
            "pscore": {"level": level},
            "pscore.llm": {"level": "DEBUG"},  # prompt and response bodies
            "uvicorn": {"level": level},
            "uvicorn.access": {"level": level},
            "LiteLLM": {"level": "WARNING"},
        },
    }

def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Send every logger to stdout once per process. Later calls are no-ops."""
    global _configured
    if not _configured:
        dictConfig(_logging_dict(level))
        _configured = True
    return logging.getLogger("pscore")
