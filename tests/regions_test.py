from itinerary_engine.core.config import settings
from itinerary_engine.schemas.itinerary import Coords, Place
from itinerary_engine.services.regions import detect_region, detect_regions, region_center


def test_detect_region_by_keywords_then_coordinates():
    assert detect_region([Place(name="Baga Beach"), Place(name="Calangute Market")]) == "Goa, India"
    assert detect_region([Place(name="Somewhere", coordinates=Coords(lat=12.42, lng=75.74))]) == "Coorg, Karnataka, India"
    assert detect_region([Place(name="Somewhere", coordinates=Coords(lat=51.5, lng=-0.12))]) == settings.DEFAULT_REGION


def test_detect_regions_for_multi_region_trips():
    places = [
        Place(name="Baga Beach"),
        Place(name="Munnar Tea Estate"),
        Place(name="Calangute Beach"),
        Place(name="Somewhere"),
    ]
    assert detect_regions(places) == ["Goa, India", "Kerala, India"]
    assert detect_regions([Place(name="Somewhere")]) == [settings.DEFAULT_REGION]
    assert detect_regions([]) == [settings.DEFAULT_REGION]


def test_region_center_lookup():
    assert region_center("Goa, India") == Coords(lat=15.4909, lng=73.8278)
    assert region_center("north goa") == Coords(lat=15.4909, lng=73.8278)
    assert region_center("Atlantis") is None
    assert region_center(None) is None


if __name__ == "__main__":
    test_detect_region_by_keywords_then_coordinates()
    test_detect_regions_for_multi_region_trips()
    test_region_center_lookup()
