"""
Pydantic records for provider configuration and persisted credential state.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthScheme(str, Enum):
    """How a provider is integrated, resolved once when the registry is built."""

    OAUTH2_PKCE = "oauth2_pkce"
    OAUTH2_PLAIN = "oauth2_plain"
    OAUTH1A_UNSUPPORTED = "oauth1a_unsupported"
    NON_OAUTH = "non_oauth"          # native SDK (HealthKit, Samsung Health)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    PENDING = "pending"
    CONNECTED = "connected"
    REFRESHING = "refreshing"


# ═══════════════════════════════════════════════════════════════════════════════
# Provider configuration
# ═══════════════════════════════════════════════════════════════════════════════


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    display_name: str
    scheme: AuthScheme
    client_id: str = ""
    client_secret: Optional[str] = Field(default=None, repr=False)
    authorization_url: str = ""
    token_url: str = ""
    revocation_url: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)

    @property
    def dialect(self) -> Optional[str]:
        if self.scheme in (AuthScheme.OAUTH2_PKCE, AuthScheme.OAUTH2_PLAIN):
            return "2.0"
        if self.scheme is AuthScheme.OAUTH1A_UNSUPPORTED:
            return "1.0a"
        return None

    @property
    def uses_pkce(self) -> bool:
        return self.scheme is AuthScheme.OAUTH2_PKCE

    @property
    def supports_oauth(self) -> bool:
        return self.scheme is not AuthScheme.NON_OAUTH

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Persisted state
# ═══════════════════════════════════════════════════════════════════════════════


class PendingAuthState(BaseModel):
    """One in-progress authorization attempt; single use."""

    state: str = Field(repr=False)
    code_verifier: Optional[str] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return now - self.created_at >= timedelta(seconds=ttl_seconds)


class TokenRecord(BaseModel):
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str = ""

    def expires_within(self, seconds: int, now: Optional[datetime] = None) -> bool:
        """True if the token is expired or will be within ``seconds``."""
        now = now or utcnow()
        return self.expires_at <= now + timedelta(seconds=seconds)


class ConnectionStatus(BaseModel):
    """Read-optimised projection; usability is always re-derived from TokenRecord."""

    connected: bool = False
    last_sync: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None
