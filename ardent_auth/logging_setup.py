"""
Process-wide logging setup. Every module logs through logging.getLogger(__name__).
"""
import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install the timestamped format on the root logger. Called once at startup."""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
    )
    # httpx logs every request URL at INFO; keep that at WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
