"""
Tests for the JSON sample document loader.
"""

import json
from datetime import date, datetime, timezone

import pytest

from oceanval.data.loaders import (
    load_document,
    load_document_dict,
    parse_date,
    parse_datetime,
)
from oceanval.exceptions import InvalidArgumentError
from oceanval.variables import Variable


DOCUMENT = {
    "stations": [
        {"station_id": "2902123", "latitude": 25.45, "longitude": 119.85,
         "status": "active", "last_profile": "2025-08-05T06:00:00Z",
         "profile_count": 145, "region": "East China Sea"},
        {"station_id": "2902125", "latitude": 18.2, "longitude": 115.6,
         "status": "inactive", "profile_count": 67, "region": "South China Sea"},
    ],
    "observations": [
        {"station_id": "2902123", "variable": "T", "timestamp": "2025-08-06T01:00:00Z",
         "depth": 5, "value": 28.4},
        {"station_id": "2902123", "variable": "SST", "timestamp": "2025-08-06T02:00:00+00:00",
         "value": 29.1, "latitude": 25.5, "longitude": 119.9},
    ],
    "forecasts": [
        {"model_id": "WenHai", "variable": "T", "issue_date": "2025-08-05",
         "lead_time": 1, "station_id": "2902123", "depth": 5, "value": 28.6},
        {"model_id": "GLO12", "variable": "SST", "issue_date": "2025-08-05",
         "lead_time": 1, "station_id": "2902123", "value": 29.3},
    ],
}


class TestParsing:
    def test_parse_datetime_z_suffix(self):
        assert parse_datetime("2025-08-06T01:00:00Z") == datetime(2025, 8, 6, 1, tzinfo=timezone.utc)

    def test_parse_date(self):
        assert parse_date("2025-08-05") == date(2025, 8, 5)
        assert parse_date(datetime(2025, 8, 5, 12)) == date(2025, 8, 5)


class TestLoadDocument:
    """Tests for populating collaborators from a document."""

    def test_load_dict(self):
        document = load_document_dict(DOCUMENT)

        assert document.counts() == {"stations": 2, "observations": 2, "forecasts": 2}
        assert document.catalog.get("2902123").profile_count == 145
        assert document.forecasts.models() == {"WenHai", "GLO12"}
        found = document.forecasts.get("WenHai", Variable.T, date(2025, 8, 5), 1, "2902123")
        assert found[0].depth == 5.0

    def test_load_file(self, tmp_path):
        path = tmp_path / "samples.json"
        path.write_text(json.dumps(DOCUMENT))

        document = load_document(path)

        assert document.source == path
        assert len(document.observations) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidArgumentError):
            load_document(path)

    def test_invalid_record_names_index(self):
        data = dict(DOCUMENT)
        data["observations"] = DOCUMENT["observations"] + [
            {"station_id": "2902123", "variable": "SST", "timestamp": "2025-08-06T03:00:00Z",
             "value": 99.0},
        ]

        with pytest.raises(InvalidArgumentError) as exc_info:
            load_document_dict(data)

        assert exc_info.value.details["section"] == "observations"
        assert exc_info.value.details["index"] == 2

    def test_missing_field(self):
        data = {"stations": [{"station_id": "2902123", "latitude": 25.45}]}
        with pytest.raises(InvalidArgumentError) as exc_info:
            load_document_dict(data)
        assert exc_info.value.details["index"] == 0

    def test_unknown_variable(self):
        data = {"forecasts": [{"model_id": "WenHai", "variable": "CHL", "issue_date": "2025-08-05",
                               "lead_time": 1, "station_id": "2902123", "value": 1.0}]}
        with pytest.raises(InvalidArgumentError):
            load_document_dict(data)

    def test_not_an_object(self):
        with pytest.raises(InvalidArgumentError):
            load_document_dict([1, 2, 3])
