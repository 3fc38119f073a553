from __future__ import annotations

import re
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

_LDAP_URL_RE = re.compile(r"^ldaps?://.+", re.IGNORECASE)


class Settings(BaseSettings):
    # Directory
    ldap_url: str = Field(..., alias="LDAP_URL")
    ldap_ignore_referrals: bool = Field(False, alias="LDAP_IGNORE_REFERRALS")
    ldap_trust_certificate: str = Field("", alias="LDAP_TRUST_CERTIFICATE")
    ldap_start_tls: bool = Field(False, alias="LDAP_START_TLS")
    ldap_connect_timeout: float | None = Field(None, alias="LDAP_CONNECT_TIMEOUT")
    ldap_tls_binding: Literal["explicit", "thread"] = Field("explicit", alias="LDAP_TLS_BINDING")

    # Authentication
    ldap_user_bind_pattern: str = Field("", alias="LDAP_USER_BIND_PATTERN")  # ':' separated
    ldap_user_base_dn: str = Field("", alias="LDAP_USER_BASE_DN")
    ldap_group_auth_pattern: str = Field("", alias="LDAP_GROUP_AUTH_PATTERN")
    ldap_bind_dn: str = Field("", alias="LDAP_BIND_DN")
    ldap_bind_password: str = Field("", alias="LDAP_BIND_PASSWORD", repr=False)

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        populate_by_name = True

    @field_validator("ldap_url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        v = (v or "").strip()
        if not _LDAP_URL_RE.match(v):
            raise ValueError("LDAP URL must start with ldap:// or ldaps://")
        return v

    @field_validator("ldap_trust_certificate", "ldap_user_base_dn", "ldap_group_auth_pattern", "ldap_bind_dn")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @model_validator(mode="after")
    def _validate_auth_mode(self) -> "Settings":
        if bool(self.ldap_bind_dn) != bool(self.ldap_bind_password):
            raise ValueError("LDAP_BIND_DN and LDAP_BIND_PASSWORD must be set together")
        if self.ldap_bind_dn:
            if not self.ldap_user_base_dn or not self.ldap_group_auth_pattern:
                raise ValueError("Bind DN mode requires LDAP_USER_BASE_DN and LDAP_GROUP_AUTH_PATTERN")
        elif self.ldap_user_bind_pattern and self.ldap_group_auth_pattern and not self.ldap_user_base_dn:
            raise ValueError("LDAP_GROUP_AUTH_PATTERN requires LDAP_USER_BASE_DN")
        return self

    @property
    def referral_policy(self) -> str:
        return "ignore" if self.ldap_ignore_referrals else "follow"

    @property
    def user_bind_patterns(self) -> list[str]:
        return [p.strip() for p in (self.ldap_user_bind_pattern or "").split(":") if p.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
