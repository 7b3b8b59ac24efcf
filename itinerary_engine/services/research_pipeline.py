"""
Sequential place research with caching and graceful degradation.

Places are researched one at a time, in input order, with a fixed delay
between real lookups so external services are not hammered. A failed
lookup never aborts the batch: it is replaced by a low-confidence fallback
record and reported as a degraded outcome.
"""

import time
from math import ceil
from typing import Callable, Dict, List, Optional, Sequence

from itinerary_engine.core.config import settings
from itinerary_engine.schemas.itinerary import Place
from itinerary_engine.schemas.research import PlaceKnowledge, ResearchOutcome, ResearchProgress
from itinerary_engine.services.categories import classify_place
from itinerary_engine.services.place_cache import PlaceKnowledgeCache, build_cache_storage
from itinerary_engine.services.place_research import (
    RESEARCH_DURATIONS,
    WebPlaceResearcher,
    build_fallback_knowledge,
)
from itinerary_engine.services.regions import detect_region
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

PlaceResearcher = Callable[[Place, str], PlaceKnowledge]
ProgressCallback = Callable[[ResearchProgress], None]

# Rough wall-clock cost of one uncached lookup
SECONDS_PER_LOOKUP = 3.0
# Fewer places than this are scheduled directly without research
RESEARCH_MIN_PLACES = 1
EXTRACTING_SHARE = 0.3


class ResearchPipeline:
    def __init__(
        self,
        researcher: Optional[PlaceResearcher] = None,
        cache: Optional[PlaceKnowledgeCache] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.researcher = researcher or WebPlaceResearcher()
        self.cache = cache if cache is not None else PlaceKnowledgeCache(build_cache_storage())
        self.delay_seconds = delay_seconds if delay_seconds is not None else settings.RESEARCH_DELAY_SEC
        self.sleep = sleep

    @staticmethod
    def _emit(
        on_progress: Optional[ProgressCallback],
        stage: str,
        place: Place,
        index: int,
        total: int,
        percent: float,
        message: str,
    ) -> None:
        if on_progress is None:
            return
        on_progress(ResearchProgress(
            stage=stage,
            placeName=place.name,
            placeIndex=index,
            totalPlaces=total,
            percent=min(100.0, percent),
            message=message,
        ))

    def research_with_outcomes(
        self,
        places: Sequence[Place],
        region: Optional[str] = None,
        use_cache: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ResearchOutcome]:
        """
        Research every place and report how each record was obtained.

        Args:
            places: Places to research, processed in order
            region: Region hint for lookups; detected from the places if omitted
            use_cache: Read and write the knowledge cache
            on_progress: Optional progress listener

        Returns:
            Exactly one outcome per input place, in input order
        """
        region = region or detect_region(places)
        total = len(places)
        outcomes: List[ResearchOutcome] = []
        logger.info(f"Starting research for {total} places in {region}")

        for i, place in enumerate(places):
            share = 100 / total
            self._emit(on_progress, "searching", place, i, total, i * share, f"Searching for {place.name}...")

            if use_cache:
                cached = self.cache.get(place.name)
                if cached is not None:
                    outcomes.append(ResearchOutcome.cached(cached))
                    self._emit(on_progress, "complete", place, i, total, (i + 1) * share, f"{place.name} (cached)")
                    continue

            self._emit(
                on_progress, "extracting", place, i, total,
                i * share + share * EXTRACTING_SHARE, f"Extracting info for {place.name}...",
            )
            try:
                knowledge = self.researcher(place, region)
            except Exception as e:
                logger.warning("Research failed for %s, using fallback: %s", place.name, e)
                fallback = build_fallback_knowledge(place, region)
                outcomes.append(ResearchOutcome.degraded(fallback, f"{type(e).__name__}: {e}"))
                self._emit(on_progress, "complete", place, i, total, (i + 1) * share, f"{place.name} (limited data)")
            else:
                if use_cache:
                    self.cache.set(place.name, knowledge)
                outcomes.append(ResearchOutcome.ok(knowledge))
                self._emit(on_progress, "complete", place, i, total, (i + 1) * share, f"Completed {place.name}")

            if i < total - 1 and self.delay_seconds > 0:
                self.sleep(self.delay_seconds)

        degraded = sum(1 for o in outcomes if o.is_degraded)
        logger.info(f"Completed research for {total} places ({degraded} degraded)")
        return outcomes

    def research(
        self,
        places: Sequence[Place],
        region: Optional[str] = None,
        use_cache: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[PlaceKnowledge]:
        outcomes = self.research_with_outcomes(places, region, use_cache, on_progress)
        return [o.knowledge for o in outcomes]

    def estimate_places(self, places: Sequence[Place]) -> Dict:
        """Quick preview without researching: durations, lodging/meal presence, uncached count."""
        total_duration = 0
        has_accommodation = has_meals = False
        needs_research = 0

        for place in places:
            category = classify_place(place)
            total_duration += RESEARCH_DURATIONS.get(category, 90)
            has_accommodation = has_accommodation or category.value == "accommodation"
            has_meals = has_meals or category.value == "restaurant"
            if self.cache.get(place.name) is None:
                needs_research += 1

        return {
            "totalDuration": total_duration,
            "hasAccommodation": has_accommodation,
            "hasMeals": has_meals,
            "needsResearch": needs_research,
            "estimatedSeconds": estimate_research_seconds(needs_research, self.delay_seconds),
        }


def estimate_research_seconds(uncached: int, delay_seconds: float = 0.5) -> float:
    if uncached <= 0:
        return 0.0
    return uncached * SECONDS_PER_LOOKUP + (uncached - 1) * delay_seconds


def should_use_research_pipeline(places: Sequence[Place]) -> Dict:
    """Whether the research-first path is worth its latency for these places."""
    count = len(places)
    if count < RESEARCH_MIN_PLACES:
        return {"recommended": False, "reason": "No places to research", "estimatedTime": "0 seconds"}

    seconds = round(count * SECONDS_PER_LOOKUP)
    estimated = f"{seconds} seconds" if seconds < 60 else f"{ceil(seconds / 60)} minutes"
    return {
        "recommended": True,
        "reason": "Research adds opening hours, crowd peaks and nearby restaurants",
        "estimatedTime": estimated,
    }
