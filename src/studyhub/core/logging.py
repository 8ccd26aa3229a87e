"""
Logging setup shared by the API and the worker process.
"""

import logging

from studyhub.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from LOG_LEVEL."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )
    # APScheduler logs every tick at INFO
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)
