"""Services package exports."""

from vidtube.services.logging_service import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
