import logging
import json
import os
import sys
from pathlib import Path
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler


# Extra fields copied onto structured entries when present on the record
STRUCTURED_FIELDS = (
    "correlation_id", "user_id", "method", "path", "status", "duration_ms",
    "client_ip", "error", "error_type", "service", "job_id", "video_id",
    "provider", "provider_task_id", "attempt", "attempts", "max_attempts",
    "progress", "count", "processed", "failed", "chat_id", "amount",
    "balance", "reference_type", "reference_id", "sleep_interval", "daemon",
    "dialect",
)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add any extra fields passed via logger.info("msg", extra={...})
        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "":
                entry[key] = value

        # Add source location for errors
        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for local development"""

    def __init__(self):
        super().__init__(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {key: getattr(record, key) for key in STRUCTURED_FIELDS if hasattr(record, key)}
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def setup_logger(name: str = "photo2video", level: str = None) -> logging.Logger:
    """
    Setup application logger.

    LOG_FORMAT=json switches stdout to structured JSON for log drains;
    otherwise a readable line format plus a rotating JSON file under logs/.
    """
    logger = logging.getLogger(name)

    # Don't add handlers if they already exist
    if logger.handlers:
        return logger

    level = level or os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    is_production = os.getenv("LOG_FORMAT") == "json"

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(StructuredFormatter() if is_production else SimpleFormatter())
    logger.addHandler(console_handler)

    if not is_production and os.getenv("LOG_FILE", "true").lower() == "true":
        try:
            log_dir = Path("logs")
            log_dir.mkdir(exist_ok=True)

            file_handler = RotatingFileHandler(
                log_dir / "photo2video.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(StructuredFormatter())
            logger.addHandler(file_handler)
        except OSError as e:
            # Read-only filesystem in some deployments
            logger.warning(f"Could not setup file logging: {e}")

    return logger


# Create default logger instance
logger = setup_logger()


def get_logger(name: str = None) -> logging.Logger:
    """Get logger instance"""
    if name:
        return setup_logger(name)
    return logger
