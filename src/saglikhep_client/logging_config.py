# src/saglikhep_client/logging_config.py

import logging
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Sets up a basic stream handler for applications embedding the client.
    Libraries importing the package get no handlers unless this is called.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT)
    # httpx logs every request at INFO
    if level_name != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
