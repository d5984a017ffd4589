from export_engine.export_engine import (
    CONTENT_TYPES,
    CSV_HEADERS,
    ExportEngine,
    ExportResult,
    format_day,
    format_number,
    normalize_format,
)

__all__ = [
    "CONTENT_TYPES",
    "CSV_HEADERS",
    "ExportEngine",
    "ExportResult",
    "format_day",
    "format_number",
    "normalize_format",
]
