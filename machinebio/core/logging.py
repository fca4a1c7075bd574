import logging
import sys

from pythonjsonlogger import jsonlogger

from machinebio.core.environment import get_log_level


def setup_logging():
    """
    Configures centralized JSON logging on stdout.
    Keeps application loggers at the configured level and quiets the
    database driver and HTTP client.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(get_log_level())

    # Prevent duplicate logs by removing existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_handler = logging.StreamHandler(sys.stdout)

    formatter = jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ'
    )
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    logging.getLogger("machinebio").setLevel(get_log_level())

    # Noise reduction for infrastructure and transport layers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)

    root_logger.info("Logging infrastructure initialized successfully.")
