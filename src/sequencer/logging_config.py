import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Set LOG_FILE="" to log to stdout only (containers)
LOG_FILE = os.getenv("LOG_FILE", "/tmp/sequencer.log")

# Library loggers and the level below which we drop their records
QUIET_LOGGERS = {
    "uvicorn.access": "WARNING",  # one line per request otherwise
    "httpx": "WARNING",
    "web3": "WARNING",
    "xrpl": "WARNING",
}


def build_logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
    names = list(handlers)

    loggers = {
        "sequencer": {"level": level, "handlers": names, "propagate": False},
    }
    loggers.update(
        {name: {"level": quiet, "handlers": names, "propagate": False} for name, quiet in QUIET_LOGGERS.items()}
    )
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": names},
    }


def setup_logging(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> None:
    logging.config.dictConfig(build_logging_config(level, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
