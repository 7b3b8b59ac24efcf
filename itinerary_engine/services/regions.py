from typing import Dict, List, Optional, Sequence

from itinerary_engine.core.config import settings
from itinerary_engine.schemas.itinerary import Coords, Place
from itinerary_engine.services.geo import calculate_centroid, effective_coords, haversine_distance_km


# Region label -> (centre, name keywords)
REGIONS: Dict[str, Dict] = {
    "Goa, India": {
        "center": Coords(lat=15.4909, lng=73.8278),
        "keywords": ["goa", "aguada", "baga", "calangute", "anjuna", "panjim", "panaji",
                     "candolim", "chapora", "vagator", "arambol", "palolem", "colva", "margao"],
    },
    "Coorg, Karnataka, India": {
        "center": Coords(lat=12.4244, lng=75.7382),
        "keywords": ["coorg", "kodagu", "madikeri", "abbey falls", "raja seat", "talacauvery",
                     "dubare", "nisargadhama"],
    },
    "Mumbai, India": {
        "center": Coords(lat=19.0760, lng=72.8777),
        "keywords": ["mumbai", "gateway of india", "marine drive", "juhu", "bandra", "colaba", "worli"],
    },
    "Delhi, India": {
        "center": Coords(lat=28.6139, lng=77.2090),
        "keywords": ["delhi", "red fort", "qutub", "india gate", "lotus temple", "chandni chowk",
                     "connaught"],
    },
    "Jaipur, India": {
        "center": Coords(lat=26.9124, lng=75.7873),
        "keywords": ["jaipur", "amber", "hawa mahal", "city palace jaipur", "nahargarh", "jal mahal"],
    },
    "Kerala, India": {
        "center": Coords(lat=10.8505, lng=76.2711),
        "keywords": ["kerala", "alleppey", "munnar", "thekkady", "kovalam", "varkala", "kochi",
                     "cochin", "kumarakom", "wayanad"],
    },
    "Bangalore, Karnataka, India": {
        "center": Coords(lat=12.9716, lng=77.5946),
        "keywords": ["bangalore", "bengaluru", "cubbon", "lalbagh", "mg road", "koramangala",
                     "indiranagar"],
    },
    "Mysore, Karnataka, India": {
        "center": Coords(lat=12.2958, lng=76.6394),
        "keywords": ["mysore", "mysuru", "chamundi", "brindavan gardens"],
    },
    "Ooty, Tamil Nadu, India": {
        "center": Coords(lat=11.4102, lng=76.6950),
        "keywords": ["ooty", "ootacamund", "nilgiri", "doddabetta"],
    },
    "Pondicherry, India": {
        "center": Coords(lat=11.9416, lng=79.8083),
        "keywords": ["pondicherry", "puducherry", "auroville", "promenade beach", "rock beach"],
    },
    "Manali, Himachal Pradesh, India": {
        "center": Coords(lat=32.2396, lng=77.1887),
        "keywords": ["manali", "solang", "rohtang", "hadimba"],
    },
    "Shimla, Himachal Pradesh, India": {
        "center": Coords(lat=31.1048, lng=77.1734),
        "keywords": ["shimla", "kufri", "jakhu"],
    },
    "Udaipur, Rajasthan, India": {
        "center": Coords(lat=24.5854, lng=73.7125),
        "keywords": ["udaipur", "lake pichola", "jagmandir"],
    },
    "Agra, India": {
        "center": Coords(lat=27.1767, lng=78.0081),
        "keywords": ["agra", "taj mahal", "fatehpur sikri"],
    },
}

# Coordinates-only fallback radius for detect_region
NEAREST_REGION_MAX_KM = 150.0


def detect_region(places: Sequence[Place]) -> str:
    """
    Infer the trip's region label.

    Name keywords are scored per region (highest wins, table order breaks
    ties). With no keyword hit, the closest region centre within
    NEAREST_REGION_MAX_KM of the places' centroid is used; otherwise the
    configured default region.
    """
    names = " ".join(p.name.lower() for p in places)

    best_region, best_score = None, 0
    for region, info in REGIONS.items():
        score = sum(1 for keyword in info["keywords"] if keyword in names)
        if score > best_score:
            best_region, best_score = region, score
    if best_region:
        return best_region

    coords = [c for c in (effective_coords(p) for p in places) if c is not None]
    if coords:
        centroid = calculate_centroid(coords)
        nearest = min(REGIONS, key=lambda r: haversine_distance_km(centroid, REGIONS[r]["center"]))
        if haversine_distance_km(centroid, REGIONS[nearest]["center"]) <= NEAREST_REGION_MAX_KM:
            return nearest

    return settings.DEFAULT_REGION


def detect_regions(places: Sequence[Place]) -> List[str]:
    """Every region any place name points at, for multi-region trips."""
    found: List[str] = []
    for place in places:
        name = place.name.lower()
        for region, info in REGIONS.items():
            if region not in found and any(k in name for k in info["keywords"]):
                found.append(region)
    return found or [settings.DEFAULT_REGION]


def region_center(region: Optional[str]) -> Optional[Coords]:
    if not region:
        return None
    if region in REGIONS:
        return REGIONS[region]["center"]
    text = region.lower()
    for label, info in REGIONS.items():
        if label.split(",")[0].lower() in text:
            return info["center"]
    return None
