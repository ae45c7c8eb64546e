"""Loading and validation of population point records."""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ...errors import ValidationError
from ...models.domain import LatLng, PopulationPoint
from ..geospatial import is_valid_coordinate

logger = logging.getLogger(__name__)

LAT_KEYS = ("lat", "latitude", "Latitude", "LAT")
LON_KEYS = ("lon", "lng", "longitude", "Longitude", "LON")
WEIGHT_KEYS = ("weight", "population", "Einwohner")
ID_KEYS = ("id", "point_id", "ID")

MAX_ERROR_SAMPLES = 10


@dataclass(slots=True)
class PopulationLoad:
    """Outcome of a population load: accepted points plus skipped-record accounting."""

    points: tuple[PopulationPoint, ...]
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def loaded(self) -> int:
        return len(self.points)

    @property
    def total_weight(self) -> float:
        return sum(point.weight for point in self.points)


def _first(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _coerce_float(value: Any, label: str, index: int) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"Record {index}: {label} must be numeric, got {value!r}", record_index=index)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError as exc:
            raise ValidationError(
                f"Record {index}: unable to parse {label} from '{value}'", record_index=index
            ) from exc
    raise ValidationError(f"Record {index}: {label} must be numeric, got {type(value).__name__}", record_index=index)


def parse_population_record(record: Mapping[str, Any], index: int) -> PopulationPoint:
    """Build a PopulationPoint from a raw mapping or raise ValidationError."""

    if not isinstance(record, Mapping):
        raise ValidationError(f"Record {index}: expected a mapping, got {type(record).__name__}", record_index=index)

    raw_lat = _first(record, LAT_KEYS)
    raw_lon = _first(record, LON_KEYS)
    if raw_lat is None or raw_lon is None:
        raise ValidationError(f"Record {index}: missing coordinates", record_index=index)
    lat = _coerce_float(raw_lat, "latitude", index)
    lon = _coerce_float(raw_lon, "longitude", index)
    if not is_valid_coordinate(lat, lon):
        raise ValidationError(f"Record {index}: coordinates out of range ({lat}, {lon})", record_index=index)

    raw_weight = _first(record, WEIGHT_KEYS)
    weight = 1.0 if raw_weight is None else _coerce_float(raw_weight, "weight", index)
    if not math.isfinite(weight) or weight < 0:
        raise ValidationError(f"Record {index}: weight must be finite and non-negative, got {weight}", record_index=index)

    raw_id = _first(record, ID_KEYS)
    point_id = str(raw_id).strip() if raw_id is not None else str(index)
    if not point_id:
        point_id = str(index)
    return PopulationPoint(id=point_id, location=LatLng(lat, lon), weight=weight)


def load_population(records: Iterable[Mapping[str, Any]]) -> PopulationLoad:
    """Validate records into population points; bad records are skipped and counted."""

    points: list[PopulationPoint] = []
    seen_ids: set[str] = set()
    errors: list[str] = []
    skipped = 0

    for index, record in enumerate(records):
        try:
            point = parse_population_record(record, index)
            if point.id in seen_ids:
                raise ValidationError(f"Record {index}: duplicate id '{point.id}'", record_index=index)
        except ValidationError as exc:
            skipped += 1
            if len(errors) < MAX_ERROR_SAMPLES:
                errors.append(str(exc))
            continue
        seen_ids.add(point.id)
        points.append(point)

    if skipped:
        logger.warning(f"Skipped {skipped} invalid population records ({len(points)} loaded)")
    else:
        logger.info(f"Loaded {len(points)} population points")
    return PopulationLoad(points=tuple(points), skipped=skipped, errors=errors)


def load_population_csv(source: Path, *, delimiter: Optional[str] = None) -> PopulationLoad:
    """Load population points from a CSV file with lat/lon/weight columns."""

    if not source.exists():
        raise FileNotFoundError(f"Population file not found: {source}")

    with source.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        if delimiter is None:
            sample = handle.read(4096)
            handle.seek(0)
            delimiter = ";" if sample.count(";") > sample.count(",") else ","
        reader = csv.DictReader(handle, delimiter=delimiter)
        if not reader.fieldnames:
            raise ValueError(f"Population file '{source}' is missing a header row.")
        return load_population(list(reader))
