"""
Sample Document Loader.

Populates the in-memory station catalog, observation feed and forecast
store from a JSON document:

    {
        "stations": [
            {"station_id": "2902123", "latitude": 25.45, "longitude": 119.85,
             "status": "active", "last_profile": "2025-08-05T06:00:00Z",
             "profile_count": 145, "region": "East China Sea"}
        ],
        "observations": [
            {"station_id": "2902123", "variable": "T",
             "timestamp": "2025-08-06T01:00:00Z", "depth": 5, "value": 28.4}
        ],
        "forecasts": [
            {"model_id": "WenHai", "variable": "T", "issue_date": "2025-08-05",
             "lead_time": 1, "station_id": "2902123", "depth": 5, "value": 28.6}
        ]
    }

Every record is validated on load; the first invalid record aborts the load
with an InvalidArgumentError naming its section and index.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from oceanval.data.stores import (
    ForecastSample,
    ForecastStore,
    ObservationFeed,
    ObservationSample,
    Station,
    StationCatalog,
)
from oceanval.exceptions import InvalidArgumentError, VerificationError

logger = logging.getLogger(__name__)


@dataclass
class SampleDocument:
    """
    Collaborators populated from one document.

    Attributes:
        catalog: Station catalog
        observations: Observation feed
        forecasts: Forecast store
        source: Path the document was read from, if any
    """

    catalog: StationCatalog = field(default_factory=StationCatalog)
    observations: ObservationFeed = field(default_factory=ObservationFeed)
    forecasts: ForecastStore = field(default_factory=ForecastStore)
    source: Optional[Path] = None

    def counts(self) -> Dict[str, int]:
        return {
            "stations": len(self.catalog.list()),
            "observations": len(self.observations),
            "forecasts": len(self.forecasts),
        }


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO 8601 timestamp; a trailing 'Z' means UTC."""
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def parse_date(value: Union[str, date]) -> date:
    """Parse an ISO 8601 calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _station(record: Dict[str, Any]) -> Station:
    last_profile = record.get("last_profile")
    return Station(
        station_id=str(record["station_id"]),
        latitude=float(record["latitude"]),
        longitude=float(record["longitude"]),
        status=record.get("status", "active"),
        last_profile=parse_datetime(last_profile) if last_profile else None,
        profile_count=int(record.get("profile_count", 0)),
        region=record.get("region", ""),
    )


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _observation(record: Dict[str, Any]) -> ObservationSample:
    return ObservationSample(
        station_id=str(record["station_id"]),
        variable=record["variable"],
        timestamp=parse_datetime(record["timestamp"]),
        value=record["value"],
        depth=_optional_float(record.get("depth")),
        latitude=_optional_float(record.get("latitude")),
        longitude=_optional_float(record.get("longitude")),
    )


def _forecast(record: Dict[str, Any]) -> ForecastSample:
    return ForecastSample(
        model_id=str(record["model_id"]),
        variable=record["variable"],
        issue_date=parse_date(record["issue_date"]),
        lead_time=record["lead_time"],
        station_id=str(record["station_id"]),
        value=record["value"],
        depth=_optional_float(record.get("depth")),
    )


def _load_section(
    records: List[Dict[str, Any]],
    section: str,
    build: Callable[[Dict[str, Any]], Any],
    add: Callable[[Any], None],
) -> None:
    if not isinstance(records, list):
        raise InvalidArgumentError(f"Section '{section}' must be a list")
    for index, record in enumerate(records):
        try:
            add(build(record))
        except VerificationError as e:
            raise InvalidArgumentError(
                f"Invalid {section} record: {e.message}",
                {"section": section, "index": index, **e.details},
            ) from e
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"Invalid {section} record: {e}",
                {"section": section, "index": index},
            ) from e


def load_document_dict(data: Dict[str, Any], source: Optional[Path] = None) -> SampleDocument:
    """
    Build collaborators from an already parsed document.

    Stations are loaded first so samples can refer to them.

    Raises:
        InvalidArgumentError: If any record is invalid
    """
    if not isinstance(data, dict):
        raise InvalidArgumentError("Sample document must be a JSON object")

    document = SampleDocument(source=source)
    _load_section(data.get("stations", []), "stations", _station, document.catalog.register)
    _load_section(
        data.get("observations", []), "observations", _observation, document.observations.append
    )
    _load_section(data.get("forecasts", []), "forecasts", _forecast, document.forecasts.append)

    counts = document.counts()
    logger.info(
        f"Loaded {counts['stations']} stations, {counts['observations']} observations "
        f"and {counts['forecasts']} forecast values"
        + (f" from {source}" if source else "")
    )
    return document


def load_document(path: Union[str, Path]) -> SampleDocument:
    """
    Load a sample document from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidArgumentError: If the file is not valid JSON or a record is invalid
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Sample document not found: {path}")

    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArgumentError(
                f"Sample document is not valid JSON: {e.msg}",
                {"path": str(path), "line": e.lineno},
            ) from e

    return load_document_dict(data, source=path)
