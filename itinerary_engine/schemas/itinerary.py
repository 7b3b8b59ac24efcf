from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


TimeSlot = Literal["morning", "afternoon", "evening", "night"]
TravelMode = Literal["walk", "bike", "auto", "car"]
ActivityType = Literal["visit", "travel", "meal", "rest", "checkin", "checkout"]
CrowdLevel = Literal["low", "medium", "high"]


class PlaceCategory(str, Enum):
    ACCOMMODATION = "accommodation"
    BEACH = "beach"
    LANDMARK = "landmark"
    FORT = "fort"
    RESTAURANT = "restaurant"
    NIGHTLIFE = "nightlife"
    ACTIVITY = "activity"
    DESTINATION = "destination"


class Coords(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Place(BaseModel):
    name: str
    category: Optional[str] = None
    coordinates: Optional[Coords] = None
    enrichedCoordinates: Optional[Coords] = None
    mustVisit: bool = False
    notes: Optional[str] = None


class PlaceCluster(BaseModel):
    places: List[Place]
    centroid: Coords
    totalDistance: float = 0.0


class TravelInfo(BaseModel):
    distance: float
    duration: int
    mode: TravelMode


class RouteSegment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Place = Field(alias="from")
    to: Place
    distance: float
    duration: int
    mode: TravelMode


class OptimizedRoute(BaseModel):
    places: List[Place] = []
    totalDistance: float = 0.0
    segments: List[RouteSegment] = []


class ScheduledActivity(BaseModel):
    id: str
    place: Place
    day: int
    timeSlot: TimeSlot
    startTime: str
    endTime: str
    durationMin: int = Field(gt=0)
    type: ActivityType
    category: PlaceCategory = PlaceCategory.DESTINATION
    fatigueImpact: int = 0
    estimatedCost: Optional[int] = None
    travelFromPrev: Optional[TravelInfo] = None
    notes: Optional[str] = None
    crowdLevel: Optional[CrowdLevel] = None
    bestTimeReason: Optional[str] = None


class PlaceRecommendation(BaseModel):
    name: str
    type: str
    coordinates: Coords
    distance: float = 0.0
    reason: str
    score: float
    description: Optional[str] = None
    mapUrl: Optional[str] = None
    googleMapsUrl: Optional[str] = None


class DayItinerary(BaseModel):
    day: int
    date: str
    activities: List[ScheduledActivity] = []
    totalFatigue: int = 0
    totalCost: int = 0
    travelDistance: float = 0.0
    recommendations: List[PlaceRecommendation] = []
    # Set once the arrival-day adjustment has been applied
    arrivalAdjusted: bool = Field(default=False, exclude=True)


class ItinerarySummary(BaseModel):
    totalDays: int
    totalCost: int
    placesVisited: int
    distanceTraveled: float
    averageFatiguePerDay: int
    missingCategories: List[str] = []


class GeneratedItinerary(BaseModel):
    days: List[DayItinerary]
    route: List[Coords] = []
    summary: ItinerarySummary
    generatedAt: str


# Input


class DateRange(BaseModel):
    start: str
    end: str


class Budget(BaseModel):
    total: float = 0.0
    currency: str = "INR"
    perPerson: bool = False


class ItineraryInput(BaseModel):
    places: List[Place] = []
    dates: DateRange
    budget: Optional[Budget] = None
    members: List[str] = []
