from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Optional
from urllib.parse import urlsplit

from .errors import ConfigurationError

if TYPE_CHECKING:
    from ldap3 import Tls

    from .tls import TrustContext

ReferralPolicy = Literal["ignore", "follow"]

_DEFAULT_PORTS = {"ldap": 389, "ldaps": 636}


@dataclass(frozen=True)
class DirectoryEndpoint:
    """Immutable description of the directory a client talks to.

    Built once at startup and shared read-only by every call.
    """

    url: str
    referral_policy: ReferralPolicy = "ignore"
    trust: Optional["TrustContext"] = None
    start_tls: bool = False
    connect_timeout: float | None = None

    @classmethod
    def from_url(
        cls,
        url: str,
        referral_policy: str = "ignore",
        trust: Optional["TrustContext"] = None,
        start_tls: bool = False,
        connect_timeout: float | None = None,
    ) -> "DirectoryEndpoint":
        url = (url or "").strip()
        if not url:
            raise ConfigurationError("LDAP URL is empty")
        parts = urlsplit(url)
        if parts.scheme.lower() not in _DEFAULT_PORTS:
            raise ConfigurationError(f"LDAP URL must start with ldap:// or ldaps://: {url!r}")
        if not parts.hostname:
            raise ConfigurationError(f"LDAP URL has no host: {url!r}")
        try:
            parts.port
        except ValueError as e:
            raise ConfigurationError(f"LDAP URL has an invalid port: {url!r}") from e

        if referral_policy not in ("ignore", "follow"):
            raise ConfigurationError(f"Unknown referral policy: {referral_policy!r}")
        if start_tls and parts.scheme.lower() == "ldaps":
            raise ConfigurationError("StartTLS cannot be combined with an ldaps:// URL")
        if connect_timeout is not None and connect_timeout <= 0:
            raise ConfigurationError("Connect timeout must be positive")

        return cls(
            url=url,
            referral_policy=referral_policy,  # type: ignore[arg-type]
            trust=trust,
            start_tls=start_tls,
            connect_timeout=connect_timeout,
        )

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def port(self) -> int:
        return urlsplit(self.url).port or _DEFAULT_PORTS[self.scheme]

    @property
    def use_ssl(self) -> bool:
        return self.scheme == "ldaps"

    @property
    def is_encrypted(self) -> bool:
        return self.use_ssl or self.start_tls

    @property
    def follow_referrals(self) -> bool:
        return self.referral_policy == "follow"


@dataclass(frozen=True)
class BindCredentials:
    principal_dn: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class SearchCriteria:
    """Subtree search request; scope is always the whole subtree."""

    base: str
    filter: str


@dataclass(frozen=True)
class ConnectionEnvironment:
    """Per-call protocol parameters, discarded as soon as the call ends."""

    url: str
    referral_policy: ReferralPolicy
    principal: str
    credentials: str = field(repr=False)
    tls: Optional["Tls"] = field(default=None, repr=False)
    authentication: str = "simple"

    @classmethod
    def build(
        cls,
        endpoint: DirectoryEndpoint,
        credentials: BindCredentials,
        tls: Optional["Tls"] = None,
    ) -> "ConnectionEnvironment":
        return cls(
            url=endpoint.url,
            referral_policy=endpoint.referral_policy,
            principal=credentials.principal_dn,
            credentials=credentials.password,
            tls=tls,
        )

    @property
    def socket_factory(self) -> str | None:
        if self.tls is None:
            return None
        t = type(self.tls)
        return f"{t.__module__}.{t.__qualname__}"
