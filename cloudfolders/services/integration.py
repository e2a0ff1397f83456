"""Tenant integration record as seen by the provider services."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from cloudfolders.providers.base import TokenInfo, utcnow


@dataclass
class Integration:
    """A tenant's connection to one cloud provider."""
    provider: str
    token: str
    tenant_id: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: list[str] = field(default_factory=list)
    connected_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None

    def token_info(self) -> TokenInfo:
        return TokenInfo(
            access_token=self.token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
            scope=list(self.scope),
        )

    def apply_token(self, token_info: TokenInfo) -> None:
        """Record a renewed token set."""
        self.token = token_info.access_token
        self.refresh_token = token_info.refresh_token or self.refresh_token
        self.expires_at = token_info.expires_at
        if token_info.scope:
            self.scope = list(token_info.scope)
        self.last_refreshed_at = utcnow()
