"""
Router for the travel-time summary.

Endpoints:
- POST /api/travel-time - Foot / cab / bike / ride-hail durations with labels
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ..container import get_travel_time_service
from ..exceptions import ProximityError
from ..middleware.auth import get_optional_identity, get_request_ip
from ..models.proximity_models import Identity, TravelTimeRequest, TravelTimeResponse
from ..services.travel_time_service import TravelTimeService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Travel Time"])


@router.post("/travel-time", response_model=TravelTimeResponse)
async def travel_time(
    body: TravelTimeRequest,
    request: Request,
    identity: Optional[Identity] = Depends(get_optional_identity),
    service: TravelTimeService = Depends(get_travel_time_service),
):
    """
    Summarize travel time between two points for display.

    Anonymous callers are allowed and rate limited per IP.
    """
    try:
        return await service.get_travel_time(
            body.origin,
            body.destination,
            ip=get_request_ip(request),
            user_id=identity.user_id if identity else None,
        )
    except ProximityError:
        raise
    except Exception as e:
        logger.error(f"Error computing travel time: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Travel time computation failed")
