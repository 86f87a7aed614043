"""
Pydantic schemas shared between the store, the refresher and the routes.

Token values are held as SecretStr so that repr(), str() and log
formatting print '**********' instead of the credential.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from qbo_bridge.models.orm import QboToken

DEFAULT_EXPIRES_IN_SECONDS = 3600
# Upper bound on a server-reported lifetime (one year)
MAX_EXPIRES_IN_SECONDS = 365 * 24 * 3600


class TokenRecord(BaseModel):
    """Immutable snapshot of one qbo_tokens row."""
    model_config = ConfigDict(frozen=True)

    integration_id: str
    realm_id: str | None = None
    access_token: SecretStr
    refresh_token: SecretStr | None = None
    expires_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_orm_row(cls, row: QboToken) -> "TokenRecord":
        return cls(
            integration_id=row.integration_id,
            realm_id=row.realm_id,
            access_token=SecretStr(row.access_token),
            refresh_token=SecretStr(row.refresh_token) if row.refresh_token is not None else None,
            expires_at=row.expires_at,
            updated_at=row.updated_at,
        )

    @property
    def can_refresh(self) -> bool:
        """Whether the record holds a refresh token at all."""
        return self.refresh_token is not None and bool(self.refresh_token.get_secret_value())

    def describe(self) -> str:
        """Identifying keys for log lines, never token values."""
        return f"integration_id={self.integration_id} realm_id={self.realm_id}"


class TokenGrant(BaseModel):
    """Parsed response from the Intuit token endpoint."""
    access_token: SecretStr
    refresh_token: SecretStr | None = None
    expires_in: int = Field(default=DEFAULT_EXPIRES_IN_SECONDS, gt=0, le=MAX_EXPIRES_IN_SECONDS)
    token_type: str = "bearer"
