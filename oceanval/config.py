"""
Configuration for the Verification Engine.

Provides dataclasses for configuring observation matching, bounded store
access, result caching and worker pools, plus loaders from dictionaries,
YAML files and environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from oceanval.variables import DEFAULT_DEPTH_LEVELS
from oceanval.data.cache.manager import CacheConfig

logger = logging.getLogger(__name__)

DEFAULT_MODEL_RANKING: Tuple[str, ...] = ("WenHai", "GLO12", "2O1S")


@dataclass
class MatchTolerance:
    """
    Tolerance for pairing an observation with a forecast.

    Attributes:
        time_window_hours: Maximum |observation time - validity time|
        radius_km: Maximum distance between float and station position
    """

    time_window_hours: float = 12.0
    radius_km: float = 50.0

    def __post_init__(self):
        """Validate configuration."""
        if self.time_window_hours <= 0:
            raise ValueError(
                f"time_window_hours must be > 0, got {self.time_window_hours}"
            )
        if self.radius_km <= 0:
            raise ValueError(f"radius_km must be > 0, got {self.radius_km}")


@dataclass
class StoreAccessConfig:
    """
    Bounds for calls into the station catalog, observation feed and forecast store.

    Attributes:
        timeout_seconds: Maximum duration of a single call
        retries: Retries after a timeout before giving up
        backoff_seconds: Delay before retry n is backoff_seconds * n
    """

    timeout_seconds: float = 5.0
    retries: int = 1
    backoff_seconds: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {self.backoff_seconds}")


@dataclass
class EngineConfig:
    """
    Complete configuration for the verification engine.

    Attributes:
        max_lead_time: Longest supported lead time in days
        depth_levels: Depth bin table levels in metres
        model_ranking: Preferred ordering of forecast models
        max_workers: Worker pool size (None = number of cores)
        tolerance: Observation match tolerance
        store_access: Store call bounds
        cache: Result cache settings
    """

    max_lead_time: int = 10
    depth_levels: List[float] = field(default_factory=lambda: list(DEFAULT_DEPTH_LEVELS))
    model_ranking: List[str] = field(default_factory=lambda: list(DEFAULT_MODEL_RANKING))
    max_workers: Optional[int] = None
    tolerance: MatchTolerance = field(default_factory=MatchTolerance)
    store_access: StoreAccessConfig = field(default_factory=StoreAccessConfig)
    cache: CacheConfig = field(default_factory=lambda: CacheConfig(default_ttl_seconds=3600))

    def __post_init__(self):
        """Validate configuration."""
        if self.max_lead_time < 1:
            raise ValueError(f"max_lead_time must be >= 1, got {self.max_lead_time}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if len(set(self.model_ranking)) != len(self.model_ranking):
            raise ValueError(f"model_ranking contains duplicates: {self.model_ranking}")

    @property
    def worker_count(self) -> int:
        """Effective worker pool size."""
        return self.max_workers or os.cpu_count() or 1

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "EngineConfig":
        """
        Create configuration from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            EngineConfig instance
        """
        defaults = cls()
        tolerance = MatchTolerance(**config_dict.get("tolerance", {}))
        store_access = StoreAccessConfig(**config_dict.get("store_access", {}))

        cache_dict = dict(config_dict.get("cache", {}))
        cache_dict.setdefault("default_ttl_seconds", defaults.cache.default_ttl_seconds)
        cache = CacheConfig(**cache_dict)

        return cls(
            max_lead_time=config_dict.get("max_lead_time", defaults.max_lead_time),
            depth_levels=config_dict.get("depth_levels", defaults.depth_levels),
            model_ranking=config_dict.get("model_ranking", defaults.model_ranking),
            max_workers=config_dict.get("max_workers", defaults.max_workers),
            tolerance=tolerance,
            store_access=store_access,
            cache=cache,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            EngineConfig instance
        """
        path = Path(yaml_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(path, "r") as f:
            config_dict = yaml.safe_load(f) or {}

        # Extract engine section if present
        if "oceanval" in config_dict:
            config_dict = config_dict["oceanval"] or {}

        logger.debug(f"Loaded engine configuration from {path}")
        return cls.from_dict(config_dict)

    @classmethod
    def from_environment(cls) -> "EngineConfig":
        """
        Create configuration from environment variables.

        Environment variables override default values:
        - OCEANVAL_MAX_LEAD_TIME
        - OCEANVAL_TIME_WINDOW_HOURS
        - OCEANVAL_RADIUS_KM
        - OCEANVAL_CACHE_TTL
        - OCEANVAL_MAX_WORKERS
        - OCEANVAL_STORE_TIMEOUT

        Returns:
            EngineConfig instance
        """
        config = cls()

        overrides = {
            "OCEANVAL_MAX_LEAD_TIME": (config, "max_lead_time", int),
            "OCEANVAL_TIME_WINDOW_HOURS": (config.tolerance, "time_window_hours", float),
            "OCEANVAL_RADIUS_KM": (config.tolerance, "radius_km", float),
            "OCEANVAL_CACHE_TTL": (config.cache, "default_ttl_seconds", int),
            "OCEANVAL_MAX_WORKERS": (config, "max_workers", int),
            "OCEANVAL_STORE_TIMEOUT": (config.store_access, "timeout_seconds", float),
        }

        for env_name, (target, attr, convert) in overrides.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                setattr(target, attr, convert(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")

        # Re-run validation on the overridden values
        config.__post_init__()
        config.tolerance.__post_init__()
        config.store_access.__post_init__()
        config.cache.__post_init__()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "max_lead_time": self.max_lead_time,
            "depth_levels": list(self.depth_levels),
            "model_ranking": list(self.model_ranking),
            "max_workers": self.max_workers,
            "tolerance": {
                "time_window_hours": self.tolerance.time_window_hours,
                "radius_km": self.tolerance.radius_km,
            },
            "store_access": {
                "timeout_seconds": self.store_access.timeout_seconds,
                "retries": self.store_access.retries,
                "backoff_seconds": self.store_access.backoff_seconds,
            },
            "cache": {
                "default_ttl_seconds": self.cache.default_ttl_seconds,
                "max_entries": self.cache.max_entries,
                "enable_statistics": self.cache.enable_statistics,
            },
        }
