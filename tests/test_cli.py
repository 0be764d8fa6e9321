"""
Tests for the oceanval command line interface.
"""

import json
from datetime import date, timedelta

import pytest
from click.testing import CliRunner

from cli.main import app
from cli.commands.query import format_value, parse_lead_times


def build_document():
    """Two floats with temperature and SST data for issue date 2025-08-05."""
    issue = date(2025, 8, 5)
    observations = []
    forecasts = []
    for lead_time in range(1, 4):
        day = (issue + timedelta(days=lead_time)).isoformat()
        for depth, observed in ((5, 28.0), (10, 27.5)):
            observations.append({
                "station_id": "2902123", "variable": "T",
                "timestamp": f"{day}T01:00:00Z", "depth": depth, "value": observed,
            })
            forecasts.append({
                "model_id": "WenHai", "variable": "T", "issue_date": issue.isoformat(),
                "lead_time": lead_time, "station_id": "2902123", "depth": depth,
                "value": observed + 0.1 * lead_time,
            })
        observations.append({
            "station_id": "2902123", "variable": "SST",
            "timestamp": f"{day}T02:00:00Z", "value": 29.0,
        })
        for model_id, error in (("WenHai", 0.2), ("GLO12", 0.4)):
            if model_id == "GLO12" and lead_time == 2:
                continue
            forecasts.append({
                "model_id": model_id, "variable": "SST", "issue_date": issue.isoformat(),
                "lead_time": lead_time, "station_id": "2902123", "value": 29.0 + error,
            })

    return {
        "stations": [
            {"station_id": "2902123", "latitude": 25.45, "longitude": 119.85,
             "status": "active", "profile_count": 145, "region": "East China Sea"},
            {"station_id": "2902125", "latitude": 18.2, "longitude": 115.6,
             "status": "inactive", "profile_count": 67, "region": "South China Sea"},
        ],
        "observations": observations,
        "forecasts": forecasts,
    }


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "samples.json"
    path.write_text(json.dumps(build_document()))
    return str(path)


class TestHelpers:
    def test_parse_lead_times(self):
        assert parse_lead_times("1-10") == (1, 10)
        assert parse_lead_times(" 3 ") == (3, 3)

    def test_parse_lead_times_invalid(self):
        import click

        with pytest.raises(click.BadParameter):
            parse_lead_times("one-ten")

    def test_format_value(self):
        assert format_value(None) == "--"
        assert format_value(0.12345) == "0.123"


class TestGroup:
    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "query" in result.output
        assert "Examples:" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "oceanval version" in result.output

    def test_verbose_and_quiet_conflict(self, runner):
        result = runner.invoke(app, ["-v", "-q", "variables"])
        assert result.exit_code != 0

    def test_info(self, runner):
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "Max lead time: 10 days" in result.output


class TestVariablesCommand:
    def test_text(self, runner):
        result = runner.invoke(app, ["variables"])
        assert result.exit_code == 0
        assert "SST" in result.output
        assert "PSU" in result.output

    def test_json_with_depths(self, runner):
        result = runner.invoke(app, ["variables", "--format", "json", "--depths"])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["variables"]["T"]["is_profile"] is True
        assert len(payload["depth_levels"]) == 42


class TestStationsCommand:
    def test_text(self, runner, data_file):
        result = runner.invoke(app, ["stations", "--data", data_file])
        assert result.exit_code == 0
        assert "2902123" in result.output
        assert "1 active" in result.output

    def test_json_filtered(self, runner, data_file):
        result = runner.invoke(app, ["stations", "--data", data_file, "-s", "inactive", "-f", "json"])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert [s["station_id"] for s in payload["stations"]] == ["2902125"]
        assert payload["summary"]["total_profiles"] == 212


class TestQueryCommand:
    def test_lead_time_series_json(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123",
            "-V", "T", "-d", "2025-08-05", "-l", "1-3", "-f", "json",
        ])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["kind"] == "lead_time_series"
        assert payload["rmse"] == pytest.approx([0.1, 0.2, 0.3])

    def test_lead_time_series_text(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123",
            "-V", "T", "-d", "2025-08-05", "-l", "1-3",
        ])
        assert result.exit_code == 0, result.output
        assert "RMSE by Lead Time" in result.output
        assert "0.300" in result.output

    def test_profile_text(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123",
            "-V", "T", "-d", "2025-08-05", "-l", "2", "--profile",
        ])
        assert result.exit_code == 0, result.output
        assert "RMSE by Depth (lead day 2)" in result.output

    def test_comparison_json(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "-r", "East China Sea",
            "-V", "SST", "-d", "2025-08-05", "-l", "1-3",
            "-m", "WenHai", "-m", "GLO12", "-f", "json",
        ])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["kind"] == "model_comparison"
        assert payload["models"]["GLO12"]["rmse"][1] is None
        assert payload["models"]["WenHai"]["rmse"][1] == pytest.approx(0.2)

    def test_profile_for_sea_level_fails(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123",
            "-V", "SLA", "-d", "2025-08-05", "-l", "1", "--profile",
        ])
        assert result.exit_code == 1
        assert "InvalidArgument" in result.output

    def test_unknown_model_fails(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123",
            "-V", "T", "-d", "2025-08-05", "-m", "NEMO",
        ])
        assert result.exit_code == 1
        assert "NotFound" in result.output

    def test_status_only_selector(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "-s", "active",
            "-V", "T", "-d", "2025-08-05", "-l", "1-3", "-f", "json",
        ])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["station_ids"] == ["2902123"]
        assert payload["rmse"] == pytest.approx([0.1, 0.2, 0.3])

    def test_station_with_status_rejected(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "--station", "2902123", "-s", "inactive",
            "-V", "T", "-d", "2025-08-05",
        ])
        assert result.exit_code == 2
        assert "--status" in result.output

    def test_selector_required(self, runner, data_file):
        result = runner.invoke(app, [
            "query", "--data", data_file, "-V", "T", "-d", "2025-08-05",
        ])
        assert result.exit_code == 2
