from __future__ import annotations

import logging

from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import escape_rdn

from ...ldap import AccessDeniedError, DirectoryClient
from ...settings import Settings
from .backend import AuthResult

log = logging.getLogger(__name__)

USER_PLACEHOLDER = "${USER}"

INVALID_CREDENTIALS = "Invalid credentials"
NOT_IN_GROUP = "Access denied: user is not a member of an authorized group."
MULTIPLE_ENTRIES = "Access denied: multiple directory entries match the user."

_SPECIAL_CHARS = frozenset(',=+<>#;"\\*()\x00')


def contains_special_characters(username: str) -> bool:
    return any(ch in _SPECIAL_CHARS for ch in username) or username != username.strip()


class LdapAuthenticator:
    """Username/password authentication on top of ``DirectoryClient``.

    Two modes, picked by settings:

    - user bind: each ``${USER}`` bind pattern is tried in order; the first DN
      the directory accepts wins. With a group pattern the bound user must
      also find itself through that filter.
    - bind DN: a service account looks the user up with the group pattern;
      exactly one entry must match, then the user's password is checked
      against that DN.

    ``AccessDeniedError`` becomes a failed ``AuthResult``; every other
    directory error propagates so callers can tell a wrong password from an
    outage.
    """

    def __init__(self, client: DirectoryClient, settings: Settings) -> None:
        self.client = client
        self.user_bind_patterns = settings.user_bind_patterns
        self.user_base_dn = settings.ldap_user_base_dn
        self.group_auth_pattern = settings.ldap_group_auth_pattern
        self.bind_dn = settings.ldap_bind_dn
        self.bind_password = settings.ldap_bind_password
        if not self.bind_dn and not self.user_bind_patterns:
            raise ValueError("Either a user bind pattern or a bind DN must be configured")

    def authenticate(self, username: str, password: str) -> AuthResult:
        username = username or ""
        if not username or not password:
            return AuthResult(success=False, error_message=INVALID_CREDENTIALS)
        if contains_special_characters(username):
            log.debug("Rejecting username with special LDAP characters")
            return AuthResult(success=False, error_message=INVALID_CREDENTIALS)

        try:
            if self.bind_dn:
                user_dn = self._authenticate_with_bind_dn(username, password)
            else:
                user_dn = self._authenticate_with_user_bind(username, password)
        except AccessDeniedError as e:
            return AuthResult(success=False, error_message=str(e))

        log.info("LDAP authentication succeeded for %s", username)
        return AuthResult(
            success=True,
            user_data={"username": username, "dn": user_dn, "auth": "ldap"},
        )

    def _group_filter(self, username: str) -> str:
        return self.group_auth_pattern.replace(USER_PLACEHOLDER, escape_filter_chars(username))

    def _authenticate_with_user_bind(self, username: str, password: str) -> str:
        last: AccessDeniedError | None = None
        for pattern in self.user_bind_patterns:
            user_dn = pattern.replace(USER_PLACEHOLDER, escape_rdn(username))
            try:
                self.client.validate_password(user_dn, password)
                if self.group_auth_pattern and not self.client.is_group_member(
                    self.user_base_dn, self._group_filter(username), user_dn, password
                ):
                    log.debug("User DN [%s] is not a member of an authorized group", user_dn)
                    raise AccessDeniedError(NOT_IN_GROUP)
                return user_dn
            except AccessDeniedError as e:
                last = e
        raise last or AccessDeniedError()

    def _authenticate_with_bind_dn(self, username: str, password: str) -> str:
        dns = self.client.lookup_distinguished_names(
            self.user_base_dn, self._group_filter(username), self.bind_dn, self.bind_password
        )
        if not dns:
            log.debug("No directory entry for %s under [%s]", username, self.user_base_dn)
            raise AccessDeniedError(NOT_IN_GROUP)
        if len(dns) > 1:
            log.warning("Multiple directory entries match %s: %s", username, sorted(dns))
            raise AccessDeniedError(MULTIPLE_ENTRIES)
        user_dn = next(iter(dns))
        self.client.validate_password(user_dn, password)
        return user_dn


def authenticate(username: str, password: str, settings: Settings, client: DirectoryClient | None = None) -> AuthResult:
    """Authenticate a user against the directory configured in ``settings``."""
    if client is None:
        from ..ldap import client_from_settings

        client = client_from_settings(settings)
    return LdapAuthenticator(client, settings).authenticate(username, password)
