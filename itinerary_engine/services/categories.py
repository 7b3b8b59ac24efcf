import re
from typing import Callable, List, Tuple

from itinerary_engine.schemas.itinerary import Place, PlaceCategory


def _name_matches(pattern: str) -> Callable[[Place], bool]:
    regex = re.compile(pattern, re.IGNORECASE)
    return lambda place: bool(regex.search(place.name or ""))


def _type_in(*types: str) -> Callable[[Place], bool]:
    wanted = set(types)
    return lambda place: (place.category or "").strip().lower() in wanted


# Ordered rules, first match wins. Name rules come before declared types so
# that e.g. "Calangute Beach" typed as "destination" still reads as a beach.
CATEGORY_RULES: List[Tuple[PlaceCategory, Callable[[Place], bool]]] = [
    (PlaceCategory.ACCOMMODATION, _name_matches(r"hostel|hotel|resort|\bstay|homestay|guest\s*house|villa\b")),
    (PlaceCategory.BEACH, _name_matches(r"beach")),
    (PlaceCategory.FORT, _name_matches(r"\bfort\b|fortress")),
    (PlaceCategory.LANDMARK, _name_matches(r"temple|church|mosque|basilica|cathedral|museum|monument")),
    (PlaceCategory.NIGHTLIFE, _name_matches(r"\b(?:lane|club|pub|bar|lounge)s?\b")),
    (PlaceCategory.RESTAURANT, _name_matches(r"cafe|café|restaurant|shack|dhaba|bistro|bakery")),
    (PlaceCategory.ACCOMMODATION, _type_in("accommodation", "hotel", "hostel", "resort", "homestay", "lodging")),
    (PlaceCategory.BEACH, _type_in("beach")),
    (PlaceCategory.FORT, _type_in("fort")),
    (PlaceCategory.LANDMARK, _type_in("landmark", "church", "temple", "museum", "monument", "waterfall", "attraction")),
    (PlaceCategory.RESTAURANT, _type_in("restaurant", "cafe", "food", "meal")),
    (PlaceCategory.NIGHTLIFE, _type_in("nightlife", "bar", "club", "pub")),
    (PlaceCategory.ACTIVITY, _type_in("activity", "adventure", "market", "shopping", "tour", "sport")),
    (PlaceCategory.DESTINATION, _type_in("destination", "other")),
]


def classify_place(place: Place) -> PlaceCategory:
    """Map a free-form place record onto the closed category set."""
    for category, matches in CATEGORY_RULES:
        if matches(place):
            return category
    return PlaceCategory.DESTINATION


def classify_type(type_name: str) -> PlaceCategory:
    """Classify a bare type string, e.g. a researched knowledge type."""
    return classify_place(Place(name="", category=type_name))


def is_accommodation(place: Place) -> bool:
    return classify_place(place) == PlaceCategory.ACCOMMODATION
