"""
Process start-up for hosts embedding the cloud folder services.

Configures logging and builds the provider registry once; the host keeps the
returned registry and hands it to every ``CloudProviderService``.
"""

import logging
from typing import Optional

from cloudfolders.core.config import CloudStorageSettings, get_settings
from cloudfolders.providers.config import build_registry
from cloudfolders.providers.registry import ProviderRegistry

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging and quiet the HTTP client libraries."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def initialize(settings: Optional[CloudStorageSettings] = None) -> ProviderRegistry:
    """Configure logging from settings and return the populated registry."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    return build_registry(settings)
