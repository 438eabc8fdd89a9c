import logging
import sys
from typing import Any, Optional, Union
from pythonjsonlogger import jsonlogger

CATEGORY_SEVERITY = {
    "auth": "high",
    "upload": "medium",
    "simulation": "high",
    "storage": "high",
    "sharing": "medium",
    "validation": "low",
    "unknown": "medium",
}

_SEVERITY_LEVEL = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}

def setup_logger(name: str = "fitsim_backend") -> logging.Logger:
    """
    Configure structured JSON logging for the application.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)

    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger

logger = setup_logger()

def log_error(
    error: Union[BaseException, str],
    category: str = "unknown",
    severity: Optional[str] = None,
    **context: Any,
) -> None:
    """
    Log an error tagged with a category and severity.

    Severity defaults per category (auth/simulation/storage are high,
    validation is low). Context keys end up as top-level JSON fields.
    """
    if category not in CATEGORY_SEVERITY:
        category = "unknown"
    severity = severity or CATEGORY_SEVERITY[category]
    message = error if isinstance(error, str) else str(error) or type(error).__name__

    logger.log(
        _SEVERITY_LEVEL.get(severity, logging.ERROR),
        f"[{category.upper()}] {message}",
        extra={
            "error_category": category,
            "error_severity": severity,
            "error_type": None if isinstance(error, str) else type(error).__name__,
            **context,
        },
    )
