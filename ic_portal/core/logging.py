"""Logging setup - called once when the app starts."""

import logging

from ic_portal.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = None) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )
    # pymongo is chatty at DEBUG (heartbeats, pool events)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
