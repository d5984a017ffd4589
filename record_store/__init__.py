from record_store.record_store import (
    RecordInput,
    RecordStore,
    parse_calendar_date,
    validate_date_range,
)

__all__ = ["RecordInput", "RecordStore", "parse_calendar_date", "validate_date_range"]
