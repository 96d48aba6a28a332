"""
Logging setup shared by the API server and the reprocessing CLI.
"""

import json
import logging
import sys

from infosight.config import Config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """Structured JSON log lines for production."""

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(config: Config) -> None:
    """Configure root logging from config (level and text/json format)."""
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    if config.log_format == "json":
        for handler in logging.root.handlers:
            handler.setFormatter(JSONFormatter())
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
