import logging.config
from pathlib import Path

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure console logging, plus a rotating file when ``log_file`` is set."""
    log_level = "DEBUG" if settings.debug else settings.log_level.upper()

    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": log_level,
        },
    }
    if settings.log_file:
        log_file = Path(settings.log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "level": log_level,
            "filename": str(log_file),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }
    handler_names = list(handlers)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            }
        },
        "handlers": handlers,
        "root": {
            "handlers": handler_names,
            "level": log_level,
        },
        "loggers": {
            "uvicorn.access": {
                "handlers": handler_names,
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": handler_names,
                "level": log_level,
                "propagate": False,
            },
        },
    })
