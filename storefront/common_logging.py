"""
Logging configuration for the storefront services
"""
import logging
import sys
from pythonjsonlogger import jsonlogger

# Chatty third-party loggers never go below WARNING
NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "opentelemetry")


def _json_formatter(service_name: str) -> logging.Formatter:
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={
            "asctime": "timestamp",
            "name": "logger",
            "levelname": "level"
        },
        static_fields={"service": service_name}
    )
    formatter.default_time_format = "%Y-%m-%dT%H:%M:%S"
    formatter.default_msec_format = "%s.%03dZ"
    return formatter


def _text_formatter(service_name: str) -> logging.Formatter:
    return logging.Formatter(
        fmt=f"%(asctime)s - {service_name} - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging(service_name: str, log_level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Send all logs to stdout, one JSON object per line in production
    
    Args:
        service_name: Added to every record
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format (json or text)
    """
    level = getattr(logging, log_level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    
    # create_app may run more than once per process (tests, reload)
    root.handlers.clear()
    
    handler = logging.StreamHandler(sys.stdout)
    if log_format.lower() == "json":
        handler.setFormatter(_json_formatter(service_name))
    else:
        handler.setFormatter(_text_formatter(service_name))
    root.addHandler(handler)
    
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    
    logging.getLogger(__name__).info(f"Logging initialized for {service_name} at level {log_level}")
    return root
