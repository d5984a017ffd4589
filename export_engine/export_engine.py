"""Weather Record Export

This module renders stored weather records into downloadable documents. Every
renderer accepts an empty record list and still produces a well-formed document
(an empty JSON array, a CSV header row, an XML root with metadata, a Markdown
table header, a one-page PDF).

Supported Formats:
- json: Record list, pretty-printed
- csv: One row per record, text fields quoted (pandas)
- xml: weather_records root with metadata and nested record elements
- md / markdown: Title, summary and a table
- pdf / document: Paginated A4 document (fpdf2)

Filename Convention:
    weather-record-{id}-{timestamp}.{ext}     export of a single record
    weather-records-{count}-{timestamp}.{ext} export of a record list

The timestamp has the form YYYY-MM-DDTHH-MM-SS (UTC), so consecutive exports do
not overwrite each other.
"""

import csv
import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

import pandas as pd
from fpdf import FPDF

from record_models import Clock, WeatherRecord, utc_now
from weather_aggregator import WeatherIcon
from weather_errors import UnsupportedExportFormat

NOT_AVAILABLE = "N/A"
TITLE = "Weather Records Export"
GENERATED_BY = "Weather Record Service Export System"

CSV_HEADERS = [
    "ID",
    "Location Name",
    "Coordinates",
    "Date Range",
    "Weather Source",
    "Daily Summary",
    "Created",
    "Updated",
]

FORMAT_ALIASES = {
    "json": "json",
    "csv": "csv",
    "xml": "xml",
    "md": "md",
    "markdown": "md",
    "pdf": "pdf",
    "document": "pdf",
}

CONTENT_TYPES = {
    "json": "application/json",
    "csv": "text/csv; charset=utf-8",
    "xml": "application/xml; charset=utf-8",
    "md": "text/markdown; charset=utf-8",
    "pdf": "application/pdf",
}

PAGE_BREAK_THRESHOLD = 3

# Characters outside the XML 1.0 Char production
INVALID_XML_CHARS = re.compile("[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


@dataclass
class ExportResult:
    content: bytes
    content_type: str
    filename: str


def normalize_format(export_format: Optional[str]) -> str:
    """Map a requested format name onto its canonical name.

    Raises:
        UnsupportedExportFormat: When the name is not a known format.
    """
    key = (export_format or "json").strip().lower()
    if key not in FORMAT_ALIASES:
        raise UnsupportedExportFormat(
            f"Unsupported format {export_format!r}. Use json, csv, xml, md or pdf"
        )

    return FORMAT_ALIASES[key]


def format_number(value: Any) -> str:
    """Render a numeric value, N/A when absent. Whole floats lose their trailing .0."""
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, float) and value.is_integer():
        return str(int(value))

    return str(value)


def format_day(day: Dict[str, Any], bold_date: bool = False) -> str:
    """One daily summary row as "date: icon Min: x°C, Max: y°C[, Rain: z mm]"."""
    label = f"**{day.get('date')}**" if bold_date else f"{day.get('date')}"
    text = (
        f"{label}: {day.get('icon') or WeatherIcon.UNKNOWN.glyph} "
        f"Min: {format_number(day.get('tmin'))}°C, Max: {format_number(day.get('tmax'))}°C"
    )
    if day.get("precip"):
        text += f", Rain: {format_number(day.get('precip'))}mm"

    return text


def coordinates_text(record: WeatherRecord) -> str:
    return f"{record.latitude:.4f}, {record.longitude:.4f}"


def _latin1(text: str) -> str:
    return text.encode("latin-1", "replace").decode("latin-1")


def _xml_text(value: Any) -> str:
    return INVALID_XML_CHARS.sub("", str(value))


def _sub_text(parent: ET.Element, tag: str, value: Any) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = _xml_text(value)

    return element


class ExportEngine:
    """Render weather records into the supported export formats.

    Attributes:
        clock: Callable returning the current UTC datetime, used for timestamps

    Example:
        engine = ExportEngine()
        result = engine.export(records, "csv")
        result.content, result.content_type, result.filename
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock
        self.__renderers: Dict[str, Callable[[Sequence[WeatherRecord], datetime], bytes]] = {
            "json": self.to_json,
            "csv": self.to_csv,
            "xml": self.to_xml,
            "md": self.to_markdown,
            "pdf": self.to_pdf,
        }

    def export(
        self,
        records: Sequence[WeatherRecord],
        export_format: Optional[str] = "json",
        record_id: Optional[int] = None,
    ) -> ExportResult:
        """Render records in the requested format.

        Args:
            records (Sequence[WeatherRecord]): Records to render.
            export_format (str | None): Format name or alias. Defaults to json.
            record_id (int | None): Id of the single exported record, used in the filename.

        Raises:
            UnsupportedExportFormat: When the format is unknown.

        Returns:
            ExportResult: Document bytes, content type and suggested filename.
        """
        fmt = normalize_format(export_format)
        now = self.clock()

        return ExportResult(
            content=self.__renderers[fmt](records, now),
            content_type=CONTENT_TYPES[fmt],
            filename=self.filename(fmt, len(records), now, record_id),
        )

    @staticmethod
    def filename(
        export_format: str, count: int, now: datetime, record_id: Optional[int] = None
    ) -> str:
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
        stem = (
            f"weather-record-{record_id}-{timestamp}"
            if record_id is not None
            else f"weather-records-{count}-{timestamp}"
        )

        return f"{stem}.{export_format}"

    def to_json(self, records: Sequence[WeatherRecord], now: datetime) -> bytes:
        data = [record.model_dump(mode="json") for record in records]

        return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

    def to_csv(self, records: Sequence[WeatherRecord], now: datetime) -> bytes:
        """CSV with one row per record; the ID column is the only unquoted one."""
        rows = [
            {
                "ID": record.id,
                "Location Name": record.resolved_name,
                "Coordinates": coordinates_text(record),
                "Date Range": f"{record.start_date} to {record.end_date}",
                "Weather Source": record.source,
                "Daily Summary": "; ".join(format_day(day) for day in record.daily_summary),
                "Created": record.created_at.date().isoformat(),
                "Updated": record.updated_at.date().isoformat(),
            }
            for record in records
        ]

        df = pd.DataFrame(rows, columns=CSV_HEADERS)

        return df.to_csv(
            index=False, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n"
        ).encode("utf-8")

    def to_markdown(self, records: Sequence[WeatherRecord], now: datetime) -> bytes:
        lines = [
            f"# {TITLE}",
            "",
            f"*Generated on {now:%Y-%m-%d} at {now:%H:%M:%S} UTC*",
            "",
            "## Summary",
            "",
            f"Total Records: **{len(records)}**",
            "",
            "| ID | Location | Coordinates | Date Range | Weather Source | Daily Summary |",
            "|---:|---|---|---|---|---|",
        ]

        for record in records:
            daily = "<br/>".join(
                format_day(day, bold_date=True) for day in record.daily_summary
            )
            cells = [
                str(record.id),
                f"**{record.resolved_name}**",
                f"`{coordinates_text(record)}`",
                f"{record.start_date} → {record.end_date}",
                record.source,
                daily,
            ]
            lines.append("| " + " | ".join(c.replace("|", "\\|") for c in cells) + " |")

        return ("\n".join(lines) + "\n").encode("utf-8")

    def to_xml(self, records: Sequence[WeatherRecord], now: datetime) -> bytes:
        root = ET.Element("weather_records")

        metadata = ET.SubElement(root, "metadata")
        _sub_text(metadata, "export_date", now.isoformat())
        _sub_text(metadata, "total_records", str(len(records)))
        _sub_text(metadata, "generated_by", GENERATED_BY)

        for record in records:
            element = ET.SubElement(root, "record")
            _sub_text(element, "id", str(record.id))

            location = ET.SubElement(element, "location")
            _sub_text(location, "name", record.resolved_name)
            if record.input_text:
                _sub_text(location, "input_text", record.input_text)

            coordinates = ET.SubElement(element, "coordinates")
            _sub_text(coordinates, "latitude", str(record.latitude))
            _sub_text(coordinates, "longitude", str(record.longitude))

            date_range = ET.SubElement(element, "date_range")
            _sub_text(date_range, "start_date", record.start_date)
            _sub_text(date_range, "end_date", record.end_date)

            _sub_text(element, "weather_source", record.source)
            _sub_text(element, "created_at", record.created_at.isoformat())
            _sub_text(element, "updated_at", record.updated_at.isoformat())

            daily = ET.SubElement(element, "daily_summary")
            for day in record.daily_summary:
                item = ET.SubElement(daily, "day")
                _sub_text(item, "date", str(day.get("date") or NOT_AVAILABLE))

                temperature = ET.SubElement(item, "temperature")
                _sub_text(temperature, "min", format_number(day.get("tmin")))
                _sub_text(temperature, "max", format_number(day.get("tmax")))

                weather = ET.SubElement(item, "weather")
                _sub_text(weather, "code", format_number(day.get("weathercode")))
                _sub_text(weather, "icon", day.get("icon") or NOT_AVAILABLE)

                if day.get("precip") is not None:
                    _sub_text(item, "precipitation", format_number(day["precip"]))

        tree = ET.ElementTree(root)
        ET.indent(tree)

        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    def build_pdf(self, records: Sequence[WeatherRecord], now: datetime) -> FPDF:
        """Lay out the PDF document.

        One section per record. With more than three records, every record after
        the first starts on a new page. Core PDF fonts only cover Latin-1, so
        weather glyphs are written as their labels.
        """
        pdf = FPDF(format="A4")
        pdf.set_margins(left=13, top=13, right=13)
        pdf.set_auto_page_break(auto=True, margin=13)
        pdf.set_title(TITLE)
        pdf.set_author("Weather Record Service")
        pdf.set_subject("Weather Data Export")
        pdf.set_keywords("weather, climate, export, data")
        pdf.set_creation_date(now)
        pdf.add_page()

        pdf.set_font("Helvetica", style="B", size=24)
        self.__line(pdf, TITLE, height=12, align="C")
        pdf.set_font("Helvetica", size=12)
        self.__line(pdf, f"Generated on {now:%Y-%m-%d} at {now:%H:%M:%S} UTC", align="C")
        pdf.ln(6)

        pdf.set_font("Helvetica", style="U", size=14)
        self.__line(pdf, "Summary", height=8)
        pdf.set_font("Helvetica", size=12)
        self.__line(pdf, f"Total Records: {len(records)}")
        pdf.ln(6)

        for idx, record in enumerate(records):
            pdf.set_font("Helvetica", style="U", size=16)
            self.__line(pdf, f"Record #{record.id}", height=9)
            pdf.set_font("Helvetica", size=12)
            self.__line(pdf, f"Location: {record.resolved_name}")
            self.__line(pdf, f"Coordinates: {coordinates_text(record)}")
            self.__line(pdf, f"Date Range: {record.start_date} to {record.end_date}")
            self.__line(pdf, f"Weather Source: {record.source}")
            pdf.ln(3)

            if record.daily_summary:
                pdf.set_font("Helvetica", style="U", size=12)
                self.__line(pdf, "Daily Weather Summary:")
                pdf.set_font("Helvetica", size=12)

                for day in record.daily_summary:
                    label = WeatherIcon.from_code(day.get("weathercode")).label
                    self.__line(
                        pdf,
                        f"  {day.get('date')}: {label} Min: {format_number(day.get('tmin'))}°C, "
                        f"Max: {format_number(day.get('tmax'))}°C",
                    )
                    precip = day.get("precip")
                    if isinstance(precip, (int, float)) and precip > 0:
                        self.__line(pdf, f"    Precipitation: {format_number(precip)}mm")

            pdf.ln(6)

            if idx < len(records) - 1 and len(records) > PAGE_BREAK_THRESHOLD:
                pdf.add_page()

        return pdf

    def to_pdf(self, records: Sequence[WeatherRecord], now: datetime) -> bytes:
        return bytes(self.build_pdf(records, now).output())

    @staticmethod
    def __line(pdf: FPDF, text: str, height: float = 7, align: str = "L") -> None:
        pdf.multi_cell(0, height, _latin1(text), align=align, new_x="LMARGIN", new_y="NEXT")

