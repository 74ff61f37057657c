class TravelStoryError(Exception):
    """Base class for errors raised by the travelstory core"""


class CityNotFoundError(TravelStoryError, LookupError):
    """Requested city id is not in the catalog"""

    def __init__(self, city_id: str):
        super().__init__(f"City not found: {city_id}")
        self.city_id = city_id


class SourceUnavailableError(TravelStoryError):
    """An external data source could not produce a result"""

    def __init__(self, source: str, reason: str = "unavailable"):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
