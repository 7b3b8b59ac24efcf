import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from itinerary_engine.core.config import settings
from itinerary_engine.schemas.itinerary import Coords, Place, PlaceCategory
from itinerary_engine.schemas.research import NearbyPlace, OpeningHours, PlaceKnowledge
from itinerary_engine.services.categories import classify_place
from itinerary_engine.services.geo import DEFAULT_CENTER, effective_coords, haversine_distance_km
from itinerary_engine.services.regions import region_center
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Defaults

RESEARCH_DURATIONS: Dict[PlaceCategory, int] = {
    PlaceCategory.ACCOMMODATION: 0,
    PlaceCategory.BEACH: 180,
    PlaceCategory.LANDMARK: 90,
    PlaceCategory.FORT: 120,
    PlaceCategory.RESTAURANT: 60,
    PlaceCategory.NIGHTLIFE: 180,
    PlaceCategory.ACTIVITY: 120,
    PlaceCategory.DESTINATION: 90,
}

BEST_TIMES: Dict[PlaceCategory, str] = {
    PlaceCategory.ACCOMMODATION: "Check-in typically after 14:00",
    PlaceCategory.BEACH: "Early morning or late afternoon for fewer crowds",
    PlaceCategory.LANDMARK: "Morning for best photos and fewer tourists",
    PlaceCategory.FORT: "Morning or late afternoon to avoid heat",
    PlaceCategory.RESTAURANT: "Lunch: 12:00-14:00, Dinner: 19:00-21:00",
    PlaceCategory.NIGHTLIFE: "After 21:00 when venues come alive",
    PlaceCategory.ACTIVITY: "Morning when energy levels are highest",
    PlaceCategory.DESTINATION: "Depends on specific activities planned",
}

DEFAULT_CROWD_PEAKS = ["10:00-12:00", "16:00-18:00"]
FALLBACK_CONFIDENCE = 0.2
HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.5
NEARBY_RADIUS_KM = 10.0
NEARBY_BOX_DEG = 0.05
MAX_NEARBY = 3

_HOURS_RE = re.compile(
    r"(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)\s*(?:-|–|to)\s*(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)",
    re.IGNORECASE,
)
_FEE_RE = re.compile(r"(?:₹|rs\.?|inr)\s*(\d+(?:,\d{3})*)", re.IGNORECASE)
_RATING_RE = re.compile(r"\b([1-5]\.\d)\s*(?:/\s*5|stars?|rating)", re.IGNORECASE)
_REVIEWS_RE = re.compile(r"\b(\d+(?:,\d{3})*)\s+reviews?", re.IGNORECASE)


def _now_iso(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def default_duration(category: PlaceCategory) -> int:
    return RESEARCH_DURATIONS.get(category, 60)


def build_fallback_knowledge(
    place: Place, region: str, now: Optional[datetime] = None
) -> PlaceKnowledge:
    """Minimal low-confidence record used when a lookup fails."""
    coords = effective_coords(place) or region_center(region) or DEFAULT_CENTER
    category = classify_place(place)
    duration = default_duration(category)

    return PlaceKnowledge(
        name=place.name,
        type=category.value,
        coordinates=coords,
        description=f"{place.name} in {region}",
        rating=4.0,
        reviewCount=0,
        priceLevel=2,
        openingHours=None,
        bestTimeToVisit=BEST_TIMES.get(category, "Morning or afternoon recommended"),
        typicalDuration=duration if duration > 0 else 60,
        crowdPeakHours=list(DEFAULT_CROWD_PEAKS),
        nearbyRestaurants=[],
        nearbyAttractions=[],
        entryFee=None,
        parkingAvailable=True,
        wheelchairAccessible=False,
        sourceUrls=[],
        lastUpdated=_now_iso(now),
        researchConfidence=FALLBACK_CONFIDENCE,
    )


def knowledge_to_place(knowledge: PlaceKnowledge) -> Place:
    return Place(name=knowledge.name, category=knowledge.type, coordinates=knowledge.coordinates)


# Snippet parsing


def _to_24h(text: str) -> Optional[str]:
    match = re.match(r"(\d{1,2})(?::(\d{2}))?\s*([ap])", text.strip().lower())
    if not match:
        return None
    hour, minute, half = int(match.group(1)), int(match.group(2) or 0), match.group(3)
    if hour > 12 or minute > 59:
        return None
    hour = hour % 12 + (12 if half == "p" else 0)
    return f"{hour:02d}:{minute:02d}"


def parse_snippets(snippets: List[str]) -> Dict[str, Any]:
    """Pull hours, entry fee, rating and review count out of search snippets."""
    text = " ".join(snippets)
    info: Dict[str, Any] = {}

    hours = _HOURS_RE.search(text)
    if hours:
        open_at, close_at = _to_24h(hours.group(1)), _to_24h(hours.group(2))
        if open_at and close_at:
            info["openingHours"] = OpeningHours(open=open_at, close=close_at)

    fee = _FEE_RE.search(text)
    if fee:
        info["entryFee"] = float(fee.group(1).replace(",", ""))
    elif re.search(r"\bfree (?:entry|admission)\b", text, re.IGNORECASE):
        info["entryFee"] = 0.0

    rating = _RATING_RE.search(text)
    if rating:
        info["rating"] = float(rating.group(1))

    reviews = _REVIEWS_RE.search(text)
    if reviews:
        info["reviewCount"] = int(reviews.group(1).replace(",", ""))

    return info


# Lookup


class WebPlaceResearcher:
    """
    Default single-place lookup: Nominatim geocoding, optional Serper web
    search, and nearby restaurants from Nominatim. Raises on failure; the
    research pipeline turns failures into fallback knowledge.
    """

    def __init__(
        self,
        nominatim_url: Optional[str] = None,
        serper_url: Optional[str] = None,
        serper_api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        self.nominatim_url = (nominatim_url or settings.NOMINATIM_URL).rstrip("/")
        self.serper_url = serper_url or settings.SERPER_URL
        self.serper_api_key = serper_api_key if serper_api_key is not None else settings.SERPER_API_KEY
        self.timeout = timeout or settings.RESEARCH_TIMEOUT
        self.headers = {"User-Agent": user_agent or settings.HTTP_USER_AGENT}

    # internal

    def _nominatim(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = requests.get(
            f"{self.nominatim_url}/search",
            params={"format": "json", **params},
            headers=self.headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def geocode(self, query: str) -> Optional[Coords]:
        results = self._nominatim({"q": query, "limit": 1})
        if not results:
            return None
        return Coords(lat=float(results[0]["lat"]), lng=float(results[0]["lon"]))

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Organic web results as [{title, link, snippet}]; empty without an API key."""
        if not self.serper_api_key:
            return []
        resp = requests.post(
            self.serper_url,
            json={"q": query, "num": 8},
            headers={**self.headers, "X-API-KEY": self.serper_api_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json().get("organic", [])

    def nearby_restaurants(self, coords: Coords) -> List[NearbyPlace]:
        box = NEARBY_BOX_DEG
        try:
            results = self._nominatim({
                "q": "restaurant",
                "limit": 8,
                "bounded": 1,
                "viewbox": f"{coords.lng - box},{coords.lat + box},{coords.lng + box},{coords.lat - box}",
            })
        except requests.exceptions.RequestException as e:
            logger.warning("Nearby restaurant lookup failed: %s", e)
            return []

        nearby: List[NearbyPlace] = []
        for result in results:
            spot = Coords(lat=float(result["lat"]), lng=float(result["lon"]))
            distance = haversine_distance_km(coords, spot)
            if distance >= NEARBY_RADIUS_KM:
                continue
            name = result.get("name") or result.get("display_name", "").split(",")[0]
            if not name:
                continue
            nearby.append(NearbyPlace(
                name=name,
                type="restaurant",
                distance=round(distance, 1),
                coordinates=spot,
                rating=4.0,
            ))
        nearby.sort(key=lambda n: n.distance)
        return nearby[:MAX_NEARBY]

    # public

    def __call__(self, place: Place, region: str) -> PlaceKnowledge:
        return self.research_single_place(place, region)

    def research_single_place(self, place: Place, region: str) -> PlaceKnowledge:
        category = classify_place(place)
        logger.info(f"Researching {place.name} ({category.value}) in {region}")

        results = self.search(f"{place.name} {region} opening hours best time entry fee")
        snippets = [r.get("snippet", "") for r in results if r.get("snippet")]
        info = parse_snippets(snippets)

        coords = effective_coords(place)
        if coords is None:
            coords = self.geocode(f"{place.name}, {region}") or region_center(region)
        if coords is None:
            raise LookupError(f"Could not locate {place.name} in {region}")

        duration = default_duration(category)
        return PlaceKnowledge(
            name=place.name,
            type=category.value,
            coordinates=coords,
            description=snippets[0][:300] if snippets else f"{place.name} in {region}",
            rating=info.get("rating", 4.0),
            reviewCount=info.get("reviewCount", 0),
            priceLevel=2,
            openingHours=info.get("openingHours"),
            bestTimeToVisit=BEST_TIMES.get(category),
            typicalDuration=duration if duration > 0 else 60,
            crowdPeakHours=list(DEFAULT_CROWD_PEAKS),
            nearbyRestaurants=self.nearby_restaurants(coords),
            nearbyAttractions=[],
            entryFee=info.get("entryFee"),
            parkingAvailable=True,
            wheelchairAccessible=False,
            sourceUrls=[r["link"] for r in results if r.get("link")],
            lastUpdated=_now_iso(),
            researchConfidence=HIGH_CONFIDENCE if len(results) > 3 else LOW_CONFIDENCE,
        )
