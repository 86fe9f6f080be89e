"""
Connection Router — canonical Meta connection status for the UI and AI.
"""

from fastapi import APIRouter, Depends

from ghoste_manager.auth import get_owner_id
from ghoste_manager.dependencies import get_credential_resolver
from ghoste_manager.services.credential_resolver import CredentialResolver

router = APIRouter()


@router.get("/connection-status")
async def get_connection_status(
    owner_id: str = Depends(get_owner_id),
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    """Never fails on store errors: a failed read comes back as connected=false with `error` set."""
    status = await resolver.resolve_connection_status(owner_id)
    return {"ok": True, **status.to_json()}
