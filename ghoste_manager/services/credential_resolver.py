"""
Credential Resolver — canonical Meta connection status.

Reads exactly one row from `meta_credentials` and normalizes it into a
`ConnectionStatus`. UI, AI context and the decision pipeline all go through
here; nothing else may decide "is Meta connected" from another table.
"""

import logging
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

from ghoste_manager.errors import guarded_read
from ghoste_manager.schemas import ConnectionStatus, REQUIRED_ASSETS
from ghoste_manager.stores import ManagerStore
from ghoste_manager.utils import as_naive_utc, utcnow

logger = logging.getLogger(__name__)


class _CredentialRow(BaseModel):
    """Expected shape of a meta_credentials row."""
    model_config = ConfigDict(extra="ignore")

    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    ad_account_id: Optional[str] = None
    page_id: Optional[str] = None
    pixel_id: Optional[str] = None
    instagram_actor_id: Optional[str] = None

    @field_validator("access_token", "ad_account_id", "page_id", "pixel_id", "instagram_actor_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


def _parse_row(row: Optional[dict]) -> Optional[_CredentialRow]:
    if row is None:
        return None
    return _CredentialRow.model_validate(row)


class CredentialResolver:
    def __init__(self, store: ManagerStore, read_timeout: Optional[float] = None):
        self.store = store
        self.read_timeout = read_timeout

    async def resolve_connection_status(self, owner_id: str) -> ConnectionStatus:
        """
        Never raises. A failed read comes back as `connected=False` with an
        error message; a missing row is the plain "not connected" value.
        """
        result = await guarded_read(
            "Credential store",
            lambda: self.store.get_credential_row(owner_id),
            timeout=self.read_timeout,
            transform=_parse_row,
        )
        if not result.ok:
            return ConnectionStatus.not_connected(error=f"Credentials check failed: {result.error}")

        creds = result.data
        if creds is None or creds.access_token is None:
            return ConnectionStatus.not_connected()

        token_expired = False
        if creds.expires_at is not None:
            token_expired = as_naive_utc(creds.expires_at) < utcnow()

        present = {
            "adAccountId": creds.ad_account_id,
            "pageId": creds.page_id,
        }
        missing = [name for name in REQUIRED_ASSETS if present[name] is None]

        status = ConnectionStatus(
            connected=True,
            assets_configured=not missing,
            ad_account_id=creds.ad_account_id,
            page_id=creds.page_id,
            pixel_id=creds.pixel_id,
            instagram_actor_id=creds.instagram_actor_id,
            missing_assets=missing,
            has_token=True,
            token_expired=token_expired,
        )
        if token_expired:
            logger.info("Meta token expired for owner; connection flagged for refresh")
        return status
