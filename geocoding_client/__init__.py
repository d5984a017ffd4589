from geocoding_client.geocoding_client import (
    GeocodeResolver,
    NominatimClient,
    ResolvedLocation,
    format_coordinates,
    is_valid_coordinate,
    parse_coordinate_text,
)

__all__ = [
    "GeocodeResolver",
    "NominatimClient",
    "ResolvedLocation",
    "format_coordinates",
    "is_valid_coordinate",
    "parse_coordinate_text",
]
