"""
Router for point-to-point routing.

Endpoints:
- POST /api/routing/etas - Per-mode ETAs between two points
- POST /api/routing/directions - Turn-by-turn directions between two points
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..container import get_travel_time_service
from ..exceptions import ProximityError
from ..middleware.auth import get_identity
from ..models.proximity_models import DirectionsRequest, EtaRequest, Identity
from ..providers.models import DirectionsResult
from ..services.travel_time_service import TravelTimeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routing", tags=["Routing"])


@router.post("/etas")
async def compute_etas(
    request: EtaRequest,
    identity: Identity = Depends(get_identity),
    service: TravelTimeService = Depends(get_travel_time_service),
):
    """
    Resolve ETAs for each requested mode.

    Returns:
        ``{walk, transit, drive}`` (each null or an ETA) plus ``bicycle`` /
        ``two_wheeler`` when requested
    """
    modes = request.modes
    if modes is None and request.mode:
        modes = [request.mode]

    try:
        return await service.get_etas(
            identity,
            request.origin,
            request.destination,
            modes=modes,
            ttl_seconds=request.ttl_seconds,
            strict=request.strict,
        )
    except ProximityError:
        raise
    except Exception as e:
        logger.error(f"Error computing ETAs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="ETA computation failed")


@router.post("/directions", response_model=DirectionsResult, response_model_exclude_none=True)
async def compute_directions(
    request: DirectionsRequest,
    identity: Identity = Depends(get_identity),
    service: TravelTimeService = Depends(get_travel_time_service),
):
    """
    Resolve a full route with bounded depart/arrive steps.
    """
    try:
        return await service.get_directions(
            identity,
            request.origin,
            request.destination,
            request.mode,
            strict=request.strict,
        )
    except ProximityError:
        raise
    except Exception as e:
        logger.error(f"Error computing directions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Directions computation failed")
