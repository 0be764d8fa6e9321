"""
Pytest configuration and fixtures for oceanval tests.

Markers:
    @pytest.mark.profile - Depth profile (T/S) tests
    @pytest.mark.comparison - Multi-model comparison tests
    @pytest.mark.concurrency - Tests exercising worker pools and single-flight
    @pytest.mark.slow - Tests that take longer to run
    @pytest.mark.cli - Command line tests

Usage:
    pytest -m profile            # Run only depth profile tests
    pytest -m "not slow"         # Skip slow tests
    pytest -m concurrency        # Run concurrency tests
"""

import pytest
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from oceanval.config import EngineConfig, StoreAccessConfig
from oceanval.data.stores import (
    ForecastSample,
    ForecastStore,
    ObservationFeed,
    ObservationSample,
    Station,
    StationCatalog,
    validity_time,
)


ISSUE_DATE = date(2025, 8, 5)
STATION_ID = "2902123"
PROFILE_DEPTHS = (5.0, 10.0, 16.0)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "profile: Depth profile tests")
    config.addinivalue_line("markers", "comparison: Multi-model comparison tests")
    config.addinivalue_line("markers", "concurrency: Worker pool and single-flight tests")
    config.addinivalue_line("markers", "slow: Slow-running tests")
    config.addinivalue_line("markers", "cli: Command line tests")


def pytest_collection_modifyitems(config, items):
    """Auto-apply markers based on test file names and test names."""
    for item in items:
        if "cli" in item.fspath.basename:
            item.add_marker(pytest.mark.cli)
        if "comparison" in item.fspath.basename:
            item.add_marker(pytest.mark.comparison)

        test_name = item.name.lower()
        if "profile" in test_name and not item.get_closest_marker("profile"):
            item.add_marker(pytest.mark.profile)
        if "concurrent" in test_name or "single_flight" in test_name:
            if not item.get_closest_marker("concurrency"):
                item.add_marker(pytest.mark.concurrency)
        if "timeout" in test_name or "stress" in test_name:
            item.add_marker(pytest.mark.slow)


class SampleFactory:
    """Appends observation and forecast samples relative to a forecast validity time."""

    def __init__(self, catalog, observations, forecasts):
        self.catalog = catalog
        self.observations = observations
        self.forecasts = forecasts

    def observe(
        self,
        variable,
        lead_time,
        value,
        depth=None,
        station_id=STATION_ID,
        issue_date=ISSUE_DATE,
        offset_hours=1.0,
        latitude=None,
        longitude=None,
    ):
        sample = ObservationSample(
            station_id=station_id,
            variable=variable,
            timestamp=validity_time(issue_date, lead_time) + timedelta(hours=offset_hours),
            value=value,
            depth=depth,
            latitude=latitude,
            longitude=longitude,
        )
        self.observations.append(sample)
        return sample

    def forecast(
        self,
        model_id,
        variable,
        lead_time,
        value,
        depth=None,
        station_id=STATION_ID,
        issue_date=ISSUE_DATE,
    ):
        sample = ForecastSample(
            model_id=model_id,
            variable=variable,
            issue_date=issue_date,
            lead_time=lead_time,
            station_id=station_id,
            value=value,
            depth=depth,
        )
        self.forecasts.append(sample)
        return sample


@pytest.fixture
def engine_config():
    """Engine configuration with small pools and short store timeouts."""
    return EngineConfig(
        max_workers=4,
        store_access=StoreAccessConfig(timeout_seconds=2.0, retries=1, backoff_seconds=0.01),
    )


@pytest.fixture
def catalog():
    """Station catalog with two East China Sea floats and one inactive float."""
    return StationCatalog([
        Station(STATION_ID, 25.45, 119.85, status="active",
                profile_count=145, region="East China Sea"),
        Station("2902124", 24.10, 121.30, status="active",
                profile_count=98, region="East China Sea"),
        Station("2902125", 18.20, 115.60, status="inactive",
                profile_count=67, region="South China Sea"),
    ])


@pytest.fixture
def observations():
    return ObservationFeed()


@pytest.fixture
def forecasts():
    return ForecastStore()


@pytest.fixture
def factory(catalog, observations, forecasts):
    """Sample factory bound to the catalog and empty stores."""
    return SampleFactory(catalog, observations, forecasts)


@pytest.fixture
def temperature_scenario(factory):
    """
    WenHai temperature forecasts for float 2902123 issued 2025-08-05.

    Observations at 5, 10 and 16 m for lead days 1-10; the forecast is the
    observation plus 0.1 * lead, so RMSE and bias at lead L are both 0.1 * L.
    """
    for lead_time in range(1, 11):
        for i, depth in enumerate(PROFILE_DEPTHS):
            observed = 28.0 - 0.5 * i
            factory.observe("T", lead_time, observed, depth=depth)
            factory.forecast("WenHai", "T", lead_time, observed + 0.1 * lead_time, depth=depth)
    return factory


@pytest.fixture
def sst_scenario(factory):
    """
    SST for two models at float 2902123.

    WenHai has lead days 1-5; GLO12 has lead days 1-5 except 3.
    """
    for lead_time in range(1, 6):
        factory.observe("SST", lead_time, 29.0)
        factory.forecast("WenHai", "SST", lead_time, 29.0 + 0.2)
        if lead_time != 3:
            factory.forecast("GLO12", "SST", lead_time, 29.0 - 0.4)
    return factory
