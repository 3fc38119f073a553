from .backend import AuthResult
from .ldap import LdapAuthenticator, authenticate

__all__ = ["AuthResult", "LdapAuthenticator", "authenticate"]
