"""Process bootstrap.

Configures logging from the settings and builds the directory client.
"""
from __future__ import annotations

from typing import Optional

from .ldap import DirectoryClient
from .log_config import setup_logging
from .services.ldap import client_from_settings
from .settings import Settings, get_settings


def initialize(settings: Optional[Settings] = None) -> DirectoryClient:
    """Apply ``log_level`` and return a client built from the settings."""
    st = settings or get_settings()
    setup_logging(level=st.log_level)
    return client_from_settings(st)
