"""
Logging helpers

Access logging writes one human-readable line per request to
``<data_dir>/access.log`` when debug mode is on.
"""
from pathlib import Path
import logging


ACCESS_LOGGER_NAME = "epg_server.access"


def setup_access_log(data_dir: str, enabled: bool) -> logging.Logger:
    """
    Configure the access logger

    Args:
        data_dir: Directory holding access.log
        enabled: Attach the file handler; otherwise the logger stays silent

    Returns:
        The access logger
    """
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.propagate = False
    for handler in list(access_logger.handlers):
        access_logger.removeHandler(handler)
        handler.close()

    if enabled:
        handler = logging.FileHandler(Path(data_dir) / "access.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        access_logger.addHandler(handler)
        access_logger.setLevel(logging.INFO)
    else:
        access_logger.addHandler(logging.NullHandler())

    return access_logger


def log_access(
    logger: logging.Logger,
    client_ip: str,
    method: str,
    url: str,
    user_agent: str,
    deny_message: str = "",
) -> None:
    """Log a single request line: ``[ip] <denial>[METHOD] url | UA: agent``"""
    logger.info(f"[{client_ip}] {deny_message}[{method}] {url} | UA: {user_agent}")


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """Log the start of a lifecycle section."""
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """Log the end of a lifecycle section."""
    logger.info(f"Completed: {section_name}")
