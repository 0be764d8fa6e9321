"""
Forecast Verification Module.

Computes RMSE-based validation statistics of ocean model forecasts against
profiling-float observations.

Submodules:
- matching: Observation/forecast pairing within time and distance tolerance
- statistics: RMSE, bias, MAE and correlation by lead time and depth
- comparison: Side-by-side multi-model comparison
- service: Query facade with fail-fast validation and result caching

Example:
    from oceanval.analysis.verification import (
        QueryRequest,
        ValidationQueryService,
    )

    with ValidationQueryService(catalog, observations, forecasts) as service:
        series = service.query(
            QueryRequest("2902123", "T", "2025-08-05", lead_time_range=(1, 10))
        )
        print(series.rmse)

        profile = service.query(
            QueryRequest("2902123", "T", "2025-08-05",
                         lead_time_range=(3, 3), depth_requested=True)
        )

        comparison = service.query(
            QueryRequest("2902123", "SST", "2025-08-05",
                         models=("WenHai", "GLO12", "2O1S"))
        )
"""

# Matching
from oceanval.analysis.verification.matching import (
    MISSING_NO_FORECAST,
    MISSING_NO_OBSERVATION,
    MatchedPair,
    MatchResult,
    MatchSlot,
    ObservationForecastMatcher,
    collect_pairs,
    haversine_km,
)

# Statistics
from oceanval.analysis.verification.statistics import (
    DepthProfilePoint,
    DepthProfileSeries,
    ErrorStatistics,
    ErrorStatisticsAggregator,
    LeadTimePoint,
    LeadTimeSeries,
    compute_error_statistics,
)

# Comparison
from oceanval.analysis.verification.comparison import (
    ModelComparison,
    ModelFailure,
    MultiModelComparator,
)

# Service
from oceanval.analysis.verification.service import (
    QueryRequest,
    QueryShape,
    ResolvedQuery,
    StationSelector,
    ValidationQueryService,
    cache_tag,
)

__all__ = [
    # Matching
    "MISSING_NO_FORECAST",
    "MISSING_NO_OBSERVATION",
    "MatchedPair",
    "MatchResult",
    "MatchSlot",
    "ObservationForecastMatcher",
    "collect_pairs",
    "haversine_km",
    # Statistics
    "DepthProfilePoint",
    "DepthProfileSeries",
    "ErrorStatistics",
    "ErrorStatisticsAggregator",
    "LeadTimePoint",
    "LeadTimeSeries",
    "compute_error_statistics",
    # Comparison
    "ModelComparison",
    "ModelFailure",
    "MultiModelComparator",
    # Service
    "QueryRequest",
    "QueryShape",
    "ResolvedQuery",
    "StationSelector",
    "ValidationQueryService",
    "cache_tag",
]
