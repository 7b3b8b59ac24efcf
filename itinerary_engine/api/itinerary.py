from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from itinerary_engine.schemas.itinerary import ItineraryInput
from itinerary_engine.services.pipeline import (
    estimate_itinerary,
    generate_itinerary,
    generate_itinerary_with_research,
)
from itinerary_engine.services.research_pipeline import ResearchPipeline
from itinerary_engine.services.transformers import (
    transform_itinerary_payload,
    validate_itinerary_payload,
)
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["itinerary"])

_research_pipeline: Optional[ResearchPipeline] = None


# Helpers


def get_research_pipeline() -> ResearchPipeline:
    """Shared pipeline (and its cache), built from settings on first use."""
    global _research_pipeline
    if _research_pipeline is None:
        _research_pipeline = ResearchPipeline()
        logger.info(f"Research pipeline ready ({type(_research_pipeline.cache.storage).__name__})")
    return _research_pipeline


def parse_payload(payload: dict) -> ItineraryInput:
    """
    Validate and normalize a request body.

    Raises:
        HTTPException: 400 for invalid payloads or malformed place records
    """
    is_valid, error_msg = validate_itinerary_payload(payload)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_msg)

    try:
        return transform_itinerary_payload(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid itinerary input: {e.errors()[:1]}")


# API Endpoints


@router.post("/itinerary/generate")
def create_itinerary(payload: dict):
    """
    Generate an itinerary directly from the submitted places.

    Flow:
    1. Validate payload
    2. Transform payload → ItineraryInput
    3. Cluster, route, schedule, pace and cost
    4. Return the itinerary

    Args:
        payload: {"places": [...], "dates": {"start", "end"}, "budget"?, "members"?}

    Returns:
        GeneratedItinerary as JSON

    Raises:
        HTTPException: 400 for invalid payload, 500 for processing errors
    """
    try:
        itinerary_input = parse_payload(payload)
        logger.info(f"Generate request: {len(itinerary_input.places)} places")
        return generate_itinerary(itinerary_input).model_dump(by_alias=True)

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to generate itinerary")
        raise HTTPException(
            status_code=500,
            detail={
                "status": "error",
                "error": str(e),
                "message": "Failed to generate itinerary. Please try again.",
            },
        )


@router.post("/itinerary/research")
def create_researched_itinerary(payload: dict):
    """
    Research every place first, then build the itinerary from that knowledge.

    Payload accepts the generate fields plus optional "region" and "useCache".

    Returns:
        {"itinerary": GeneratedItinerary, "knowledge": [...], "outcomes": [...]}

    Raises:
        HTTPException: 400 for invalid payload, 500 for processing errors
    """
    try:
        itinerary_input = parse_payload(payload)
        result = generate_itinerary_with_research(
            itinerary_input,
            pipeline=get_research_pipeline(),
            region=payload.get("region"),
            use_cache=bool(payload.get("useCache", True)),
        )
        return result.model_dump(by_alias=True)

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to generate researched itinerary")
        raise HTTPException(
            status_code=500,
            detail={
                "status": "error",
                "error": str(e),
                "message": "Failed to research itinerary. Please try again.",
            },
        )


@router.post("/itinerary/estimate")
def estimate(payload: dict):
    """Day count, place counts, rough cost and whether research is worth it."""
    try:
        return estimate_itinerary(parse_payload(payload))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to estimate itinerary")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/research/cache/stats")
def cache_stats():
    try:
        return get_research_pipeline().cache.stats()
    except Exception as e:
        logger.exception("Failed to read cache stats")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/research/cache")
def clear_cache():
    """
    Drop every cached place record.

    Returns:
        {"status": "cleared"}
    """
    try:
        get_research_pipeline().cache.clear()
        return {"status": "cleared"}
    except Exception as e:
        logger.exception("Failed to clear cache")
        raise HTTPException(status_code=500, detail=str(e))
