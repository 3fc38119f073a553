from __future__ import annotations

import logging
import ssl
from contextlib import closing, contextmanager, nullcontext
from typing import Callable, Iterator, Literal, Optional

from ldap3 import AUTO_BIND_NONE, NONE, SIMPLE, SUBTREE, SYNC, Connection, Server, Tls
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPException,
    LDAPPasswordIsMandatoryError,
    LDAPReferralError,
    LDAPStartTLSError,
)
from ldap3.core.results import (
    RESULT_INVALID_CREDENTIALS,
    RESULT_REFERRAL,
    RESULT_SIZE_LIMIT_EXCEEDED,
    RESULT_SUCCESS,
)

from .errors import (
    AccessDeniedError,
    DirectoryError,
    DirectoryProtocolError,
    DirectoryReferralError,
    DirectoryUnavailableError,
)
from .models import BindCredentials, ConnectionEnvironment, DirectoryEndpoint, SearchCriteria
from .tls import ContextTls, ThreadBoundTls, bind_thread_ssl_context

log = logging.getLogger(__name__)

TlsBinding = Literal["explicit", "thread"]
ConnectionFactory = Callable[[Server, ConnectionEnvironment], Connection]


@contextmanager
def _ldap_errors() -> Iterator[None]:
    """Translate ldap3 exceptions into the package taxonomy."""
    try:
        yield
    except DirectoryError:
        raise
    except LDAPPasswordIsMandatoryError:
        raise AccessDeniedError() from None
    except LDAPReferralError as e:
        raise DirectoryReferralError(f"Referral failed: {e}") from e
    except (LDAPCommunicationError, LDAPStartTLSError) as e:
        raise DirectoryUnavailableError(f"LDAP server unavailable: {e}") from e
    except LDAPException as e:
        raise DirectoryProtocolError(f"LDAP error: {e}") from e


class DirectoryClient:
    """Bind-as-user password validation and service-account searches.

    Every public call opens its own connection, binds, optionally searches
    and unbinds before returning. Nothing but the endpoint is shared between
    calls.
    """

    def __init__(
        self,
        endpoint: DirectoryEndpoint,
        tls_binding: TlsBinding = "explicit",
        connection_factory: Optional[ConnectionFactory] = None,
        client_strategy: str = SYNC,
    ) -> None:
        if tls_binding not in ("explicit", "thread"):
            raise ValueError(f"Unknown TLS binding mode: {tls_binding!r}")
        self.endpoint = endpoint
        self.tls_binding = tls_binding
        self.client_strategy = client_strategy
        self._connection_factory = connection_factory or self._default_connection

        if not endpoint.is_encrypted:
            log.warning(
                "Passwords will be sent in the clear to the LDAP server %s. "
                "Consider ldaps:// or StartTLS.",
                endpoint.host,
            )

        self.tls = self._make_tls()
        self.server = Server(
            endpoint.host,
            port=endpoint.port,
            use_ssl=endpoint.use_ssl,
            tls=self.tls,
            get_info=NONE,
            connect_timeout=endpoint.connect_timeout,
        )

    def _make_tls(self) -> Tls | None:
        if not self.endpoint.is_encrypted:
            return None
        trust = self.endpoint.trust
        if trust is None:
            return ContextTls(ssl.create_default_context())
        if self.tls_binding == "thread":
            return ThreadBoundTls()
        return trust.to_tls()

    def _default_connection(self, server: Server, env: ConnectionEnvironment) -> Connection:
        return Connection(
            server,
            user=env.principal,
            password=env.credentials,
            authentication=SIMPLE,
            auto_bind=AUTO_BIND_NONE,
            auto_referrals=env.referral_policy == "follow",
            client_strategy=self.client_strategy,
            read_only=True,
            raise_exceptions=False,
        )

    def create_environment(self, principal_dn: str, password: str) -> ConnectionEnvironment:
        return ConnectionEnvironment.build(
            self.endpoint, BindCredentials(principal_dn, password), tls=self.tls
        )

    def _thread_binding(self):
        trust = self.endpoint.trust
        if self.tls_binding == "thread" and trust is not None and self.tls is not None:
            return bind_thread_ssl_context(trust.ssl_context)
        return nullcontext()

    def _bind(self, conn: Connection, env: ConnectionEnvironment) -> None:
        if not env.credentials:
            # An empty password is an unauthenticated bind, which servers accept.
            log.debug("Rejecting empty password for user DN [%s]", env.principal)
            raise AccessDeniedError()

        log.debug("Binding as [%s] via %s", env.principal, env.socket_factory or "plain socket")
        with self._thread_binding():
            conn.open()
            if self.endpoint.start_tls and not conn.start_tls():
                raise DirectoryUnavailableError("StartTLS was not negotiated")
            if conn.bind():
                log.debug("Password validation successful for user DN [%s]", env.principal)
                return

        result = dict(conn.result or {})
        code = result.get("result")
        description = str(result.get("description") or "")
        if code == RESULT_INVALID_CREDENTIALS:
            log.debug("Password validation failed for user DN [%s]: %s", env.principal, description)
            raise AccessDeniedError()
        raise DirectoryProtocolError(
            f"Bind failed: {description or 'unknown error'}", result_code=code, description=description
        )

    @staticmethod
    def _release(conn: Connection) -> None:
        try:
            conn.unbind()
        except LDAPException:
            log.debug("Error while closing LDAP connection", exc_info=True)

    @contextmanager
    def open_context(self, principal_dn: str, password: str) -> Iterator[Connection]:
        """Bound connection for the duration of the block, always unbound after."""
        env = self.create_environment(principal_dn, password)
        with _ldap_errors():
            conn = self._connection_factory(self.server, env)
        try:
            with _ldap_errors():
                self._bind(conn, env)
            yield conn
        finally:
            self._release(conn)

    def _search(self, conn: Connection, criteria: SearchCriteria, size_limit: int = 0) -> Iterator[str]:
        with _ldap_errors():
            conn.search(
                search_base=criteria.base,
                search_filter=criteria.filter,
                search_scope=SUBTREE,
                size_limit=size_limit,
            )
        result = dict(conn.result or {})
        code = result.get("result")
        description = str(result.get("description") or "")
        if code == RESULT_REFERRAL:
            if self.endpoint.follow_referrals:
                raise DirectoryReferralError(
                    f"Unresolved referral for {criteria.base}", result_code=code, description=description
                )
        elif code not in (RESULT_SUCCESS, RESULT_SIZE_LIMIT_EXCEEDED):
            raise DirectoryProtocolError(
                f"Search failed: {description or 'unknown error'}", result_code=code, description=description
            )

        for item in conn.response or []:
            if item.get("type") != "searchResEntry":
                continue
            yield item["dn"]

    def validate_password(self, principal_dn: str, password: str) -> None:
        """Raise ``AccessDeniedError`` unless the directory accepts the bind."""
        with self.open_context(principal_dn, password):
            pass

    def is_group_member(
        self,
        search_base: str,
        group_filter: str,
        context_dn: str,
        context_password: str,
    ) -> bool:
        criteria = SearchCriteria(search_base, group_filter)
        with self.open_context(context_dn, context_password) as conn:
            with closing(self._search(conn, criteria, size_limit=1)) as results:
                return next(results, None) is not None

    def lookup_distinguished_names(
        self,
        search_base: str,
        search_filter: str,
        context_dn: str,
        context_password: str,
    ) -> set[str]:
        criteria = SearchCriteria(search_base, search_filter)
        with self.open_context(context_dn, context_password) as conn:
            with closing(self._search(conn, criteria)) as results:
                return set(results)
