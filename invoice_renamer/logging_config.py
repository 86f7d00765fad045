"""Logging configuration for invoice renaming."""
import logging
import logging.config
from pathlib import Path
from typing import Dict, Any

DEFAULT_LOG_FILE = "invoice_renamer.log"


def get_logging_config(
    logs_folder: Path | None = None,
    log_filename: str = DEFAULT_LOG_FILE,
    console_level: str = "INFO"
) -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Without ``logs_folder`` only the console handler is configured.
    """
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": console_level.upper(),
            "formatter": "standard",
            "stream": "ext://sys.stderr"
        }
    }
    if logs_folder is not None:
        logs_folder.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(logs_folder / log_filename),
            "mode": "a",
            "encoding": "utf-8"
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(levelname)s - %(message)s"
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
            }
        },
        "handlers": handlers,
        "root": {
            "level": "WARNING",
            "handlers": list(handlers)
        },
        "loggers": {
            "invoice_renamer": {
                "level": "DEBUG",
                "handlers": list(handlers),
                "propagate": False
            }
        }
    }


def setup_logging(
    logs_folder: Path | None = None,
    log_filename: str = DEFAULT_LOG_FILE,
    console_level: str = "INFO"
) -> None:
    """Set up logging with the specified configuration."""
    config = get_logging_config(logs_folder, log_filename, console_level)

    # Clear any existing handlers to prevent duplicate logs
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.config.dictConfig(config)
