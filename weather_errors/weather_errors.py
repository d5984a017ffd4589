"""Weather Service Error Taxonomy

Every failure the service reports to a caller is one of the classes below. Each
class carries the HTTP status code the API layer answers with, so endpoints can
translate any WeatherServiceError into an HTTPException without a lookup table.

Error Classes:
- InvalidRange: Bad date format, inverted range or span too large (400)
- LocationNotFound: The resolver found no match for the given input (400)
- UpstreamFetchFailure: Archive, forecast or geocoder call failed or timed out (400)
- RecordNotFound: Referenced record id does not exist (404)
- UnsupportedExportFormat: Export requested in an unknown format (400)
"""


class WeatherServiceError(Exception):
    """Base class for all errors reported to callers of the weather service."""

    status_code = 500


class InvalidRange(WeatherServiceError, ValueError):
    status_code = 400


class LocationNotFound(WeatherServiceError):
    status_code = 400


class UpstreamFetchFailure(WeatherServiceError):
    status_code = 400


class RecordNotFound(WeatherServiceError, LookupError):
    status_code = 404

    def __init__(self, record_id: int) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class UnsupportedExportFormat(WeatherServiceError, ValueError):
    status_code = 400
