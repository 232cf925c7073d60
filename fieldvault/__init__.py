import logging

from .constants import APP_NAME, SCHEMA_VERSION

VERSION = "1.0.0"

logger = logging.getLogger(__name__)
logger.debug(f"{APP_NAME} {VERSION} (storage schema {SCHEMA_VERSION})")

__all__ = ["APP_NAME", "SCHEMA_VERSION", "VERSION"]
