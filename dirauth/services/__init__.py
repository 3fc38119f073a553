"""Service layer: building clients from settings and authenticating users."""

from .ldap import client_from_settings, endpoint_from_settings
from .auth import AuthResult, LdapAuthenticator, authenticate

__all__ = [
    "client_from_settings",
    "endpoint_from_settings",
    "AuthResult",
    "LdapAuthenticator",
    "authenticate",
]
