from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from itinerary_engine.schemas.itinerary import Coords, GeneratedItinerary


ResearchStage = Literal["searching", "extracting", "complete"]
OutcomeStatus = Literal["ok", "cached", "degraded"]


class NearbyPlace(BaseModel):
    name: str
    type: str = "restaurant"
    distance: Optional[float] = None
    coordinates: Optional[Coords] = None
    rating: Optional[float] = None
    cuisine: Optional[str] = None


class OpeningHours(BaseModel):
    open: str
    close: str
    days: List[str] = []
    notes: Optional[str] = None


class PlaceKnowledge(BaseModel):
    name: str
    type: str
    coordinates: Coords
    description: str = ""
    rating: float = 4.0
    reviewCount: int = 0
    priceLevel: int = 2
    openingHours: Optional[OpeningHours] = None
    bestTimeToVisit: Optional[str] = None
    typicalDuration: int = 60
    crowdPeakHours: List[str] = []
    nearbyRestaurants: List[NearbyPlace] = []
    nearbyAttractions: List[NearbyPlace] = []
    entryFee: Optional[float] = None
    parkingAvailable: Optional[bool] = None
    wheelchairAccessible: Optional[bool] = None
    sourceUrls: List[str] = []
    lastUpdated: str
    researchConfidence: float = Field(ge=0.0, le=1.0)


class PlaceCacheEntry(BaseModel):
    data: PlaceKnowledge
    timestamp: float
    version: int


class ResearchProgress(BaseModel):
    stage: ResearchStage
    placeName: str
    placeIndex: int
    totalPlaces: int
    percent: float
    message: str


class ResearchOutcome(BaseModel):
    """Tagged research result: fresh lookup, cache hit, or degraded fallback."""

    status: OutcomeStatus
    knowledge: PlaceKnowledge
    reason: Optional[str] = None

    @classmethod
    def ok(cls, knowledge: PlaceKnowledge) -> "ResearchOutcome":
        return cls(status="ok", knowledge=knowledge)

    @classmethod
    def cached(cls, knowledge: PlaceKnowledge) -> "ResearchOutcome":
        return cls(status="cached", knowledge=knowledge)

    @classmethod
    def degraded(cls, knowledge: PlaceKnowledge, reason: str) -> "ResearchOutcome":
        return cls(status="degraded", knowledge=knowledge, reason=reason)

    @property
    def is_degraded(self) -> bool:
        return self.status == "degraded"


class ResearchedItinerary(BaseModel):
    itinerary: GeneratedItinerary
    knowledge: List[PlaceKnowledge] = []
    outcomes: List[ResearchOutcome] = []
