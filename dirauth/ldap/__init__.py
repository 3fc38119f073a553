"""LDAP directory client package.

Public API:
    - DirectoryEndpoint
    - DirectoryClient
    - load_trust_context / TrustContext
    - the exception taxonomy from ``errors``
"""

from .client import DirectoryClient
from .errors import (
    AccessDeniedError,
    ConfigurationError,
    DirectoryError,
    DirectoryProtocolError,
    DirectoryReferralError,
    DirectoryUnavailableError,
    TrustConfigurationError,
)
from .models import BindCredentials, ConnectionEnvironment, DirectoryEndpoint, SearchCriteria
from .tls import TrustContext, load_trust_context

__all__ = [
    "DirectoryClient",
    "DirectoryEndpoint",
    "BindCredentials",
    "ConnectionEnvironment",
    "SearchCriteria",
    "TrustContext",
    "load_trust_context",
    "DirectoryError",
    "ConfigurationError",
    "TrustConfigurationError",
    "AccessDeniedError",
    "DirectoryUnavailableError",
    "DirectoryProtocolError",
    "DirectoryReferralError",
]
