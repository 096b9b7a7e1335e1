"""
Router for location pings.

Endpoints:
- POST /api/presence - Record the caller's location
- GET /api/presence/me - Read the caller's stored presence
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..container import get_container
from ..exceptions import ProximityError
from ..middleware.auth import get_identity
from ..models.proximity_models import (
    Identity,
    PresenceRecord,
    PresenceUpdateRequest,
    PresenceUpdateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/presence", tags=["Presence"])


@router.post("", response_model=PresenceUpdateResponse)
async def update_presence(
    request: PresenceUpdateRequest,
    identity: Identity = Depends(get_identity),
    container=Depends(get_container),
):
    """
    Record a location ping.

    The caller's stored privacy preference decides whether coordinates are
    kept or nulled in both projections. When that preference cannot be read
    nothing is written and the request fails with 503.
    """
    try:
        profile = await container.profiles.get_profile(identity.user_id)
        hidden = bool(profile and profile.privacy_hide_proximity)
        persisted = await container.presence.upsert(
            identity.user_id,
            request.lat,
            request.lng,
            request.accuracy_m,
            privacy_hide=hidden,
            approximate=request.approximate,
        )
    except ProximityError:
        raise
    except Exception as e:
        logger.error(f"Error recording presence: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record presence")

    return PresenceUpdateResponse(ok=True, persisted=persisted, privacy_hide_proximity=hidden)


@router.get("/me", response_model=PresenceRecord)
async def get_my_presence(
    identity: Identity = Depends(get_identity),
    container=Depends(get_container),
):
    """
    Read the caller's own presence (both projections).
    """
    record = await container.presence.read(identity.user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No presence recorded")
    return record
