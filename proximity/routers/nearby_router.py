"""
Router for nearby candidate ranking.

Endpoints:
- GET /api/nearby - Record the viewer's location and rank nearby candidates
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..container import get_ranking_service
from ..exceptions import ProximityError
from ..middleware.auth import get_identity
from ..models.proximity_models import Identity, NearbyQuery
from ..services.ranking_service import CandidateRankingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Nearby"])


@router.get("/nearby")
async def get_nearby(
    lat: Optional[str] = Query(None, description="Viewer latitude"),
    lng: Optional[str] = Query(None, description="Viewer longitude"),
    accuracy_m: Optional[str] = Query(None, description="Reported accuracy in meters"),
    approximate: bool = Query(False, description="Store the viewer location on a ~1 km grid"),
    radius_m: Optional[str] = Query(None, description="Search radius (500-50000, default 10000)"),
    limit: Optional[str] = Query(None, description="Maximum candidates (1-100, default 40)"),
    eta_top_n: Optional[str] = Query(None, description="Candidates that get an ETA (5-60, default 25)"),
    eta_ttl_seconds: Optional[str] = Query(None, description="ETA cache window (120-600, default 300)"),
    identity: Identity = Depends(get_identity),
    ranking: CandidateRankingService = Depends(get_ranking_service),
):
    """
    Rank candidates near the viewer.

    FREE viewers get distance-only results; PAID viewers get ETAs for the
    closest candidates in their default travel mode.

    Returns:
        ``{candidates: [...], warnings?: [...]}``
    """
    query = NearbyQuery(
        lat=lat,
        lng=lng,
        accuracy_m=accuracy_m,
        approximate=approximate,
        radius_m=radius_m,
        limit=limit,
        eta_top_n=eta_top_n,
        eta_ttl_seconds=eta_ttl_seconds,
    )
    try:
        result = await ranking.rank(identity, query)
    except ProximityError:
        raise
    except Exception as e:
        logger.error(f"Error ranking nearby candidates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch nearby candidates")

    logger.info(f"Ranked {len(result.candidates)} candidates (warnings: {len(result.warnings)})")
    return result.to_response()
