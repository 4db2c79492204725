import logging
import logging.config
import os
import sys

_LOGGING_CONF = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logging.conf")
if os.path.exists(_LOGGING_CONF):
    logging.config.fileConfig(_LOGGING_CONF, disable_existing_loggers=False)
logger = logging.getLogger(__name__)

from sqlalchemy.orm import declarative_base
Base = declarative_base()

import sqlalchemy

logger.debug(f"sqlalchemy: {sqlalchemy.__version__}")
logger.debug(f"python: {sys.version}")
