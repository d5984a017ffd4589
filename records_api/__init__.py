from records_api.records_api import (
    GeocodeResponse,
    HealthResponse,
    RecordCreateRequest,
    RecordUpdateRequest,
    app,
    create_app,
)

__all__ = [
    "GeocodeResponse",
    "HealthResponse",
    "RecordCreateRequest",
    "RecordUpdateRequest",
    "app",
    "create_app",
]
