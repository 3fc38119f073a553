from __future__ import annotations

import logging

from ..ldap import DirectoryClient, DirectoryEndpoint, load_trust_context
from ..settings import Settings

log = logging.getLogger(__name__)


def endpoint_from_settings(st: Settings) -> DirectoryEndpoint:
    """Build the immutable endpoint, loading trust material once.

    Raises ``ConfigurationError`` for a malformed URL or a broken certificate.
    """
    trust = load_trust_context(st.ldap_trust_certificate) if st.ldap_trust_certificate else None
    return DirectoryEndpoint.from_url(
        st.ldap_url,
        referral_policy=st.referral_policy,
        trust=trust,
        start_tls=st.ldap_start_tls,
        connect_timeout=st.ldap_connect_timeout,
    )


def client_from_settings(st: Settings) -> DirectoryClient:
    endpoint = endpoint_from_settings(st)
    log.info(
        "LDAP client configured: url=%s, referrals=%s, custom trust=%s",
        endpoint.url,
        endpoint.referral_policy,
        "yes" if endpoint.trust else "no",
    )
    return DirectoryClient(endpoint, tls_binding=st.ldap_tls_binding)
