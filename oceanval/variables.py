"""
Verification Variables and Depth Levels.

Static configuration for the ocean variables that can be verified against
profiling-float observations, and the fixed vertical levels used to bin
temperature and salinity profiles.

The variable table is validated when this module is imported, so a
misconfigured entry fails at startup instead of at query time. Lookups for
unknown variables raise InvalidArgumentError; there is no fallback entry.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple, Union

from oceanval.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)


class Variable(Enum):
    """Verifiable ocean variables."""

    T = "T"      # Temperature profile
    S = "S"      # Salinity profile
    SST = "SST"  # Sea surface temperature
    SLA = "SLA"  # Sea level anomaly
    U = "U"      # Eastward current at 15 m
    V = "V"      # Northward current at 15 m

    @classmethod
    def parse(cls, value: Union[str, "Variable"]) -> "Variable":
        """
        Resolve a variable from its identifier.

        Args:
            value: Variable or identifier string (case-insensitive)

        Returns:
            Matching Variable

        Raises:
            InvalidArgumentError: If the identifier is not a known variable
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            for member in cls:
                if member.value == key:
                    return member
        raise InvalidArgumentError(
            f"Unknown variable '{value}'",
            {"allowed": [v.value for v in cls]},
        )

    @property
    def spec(self) -> "VariableSpec":
        """Static specification for this variable."""
        return VARIABLE_SPECS[self]

    @property
    def is_profile(self) -> bool:
        """Whether the variable has a depth dimension."""
        return VARIABLE_SPECS[self].is_profile


@dataclass(frozen=True)
class VariableSpec:
    """
    Static properties of a verification variable.

    Attributes:
        long_name: Human readable name
        unit: Physical unit
        valid_range: Inclusive (low, high) range used to sanity-check values
        is_profile: Whether values are sampled at depth bins
        description: Short description
        nominal_depth_m: Fixed sampling depth for single-level variables
    """

    long_name: str
    unit: str
    valid_range: Tuple[float, float]
    is_profile: bool = False
    description: str = ""
    nominal_depth_m: Optional[float] = None

    def in_range(self, value: float) -> bool:
        """Check a value against the valid range."""
        low, high = self.valid_range
        return low <= value <= high

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary."""
        return {
            "long_name": self.long_name,
            "unit": self.unit,
            "valid_range": list(self.valid_range),
            "is_profile": self.is_profile,
            "description": self.description,
            "nominal_depth_m": self.nominal_depth_m,
        }


VARIABLE_SPECS: Dict[Variable, VariableSpec] = {
    Variable.T: VariableSpec(
        long_name="Temperature profile",
        unit="°C",
        valid_range=(-2.5, 40.0),
        is_profile=True,
        description="Sea water temperature vertical profile",
    ),
    Variable.S: VariableSpec(
        long_name="Salinity profile",
        unit="PSU",
        valid_range=(0.0, 42.0),
        is_profile=True,
        description="Sea water salinity vertical profile",
    ),
    Variable.SST: VariableSpec(
        long_name="Sea surface temperature",
        unit="°C",
        valid_range=(-2.5, 40.0),
        description="Sea surface temperature",
    ),
    Variable.SLA: VariableSpec(
        long_name="Sea level anomaly",
        unit="m",
        valid_range=(-3.0, 3.0),
        description="Sea surface height anomaly",
    ),
    Variable.U: VariableSpec(
        long_name="Eastward current",
        unit="m/s",
        valid_range=(-5.0, 5.0),
        description="Eastward current velocity at 15 m depth",
        nominal_depth_m=15.0,
    ),
    Variable.V: VariableSpec(
        long_name="Northward current",
        unit="m/s",
        valid_range=(-5.0, 5.0),
        description="Northward current velocity at 15 m depth",
        nominal_depth_m=15.0,
    ),
}


# Operational model output levels (m)
DEFAULT_DEPTH_LEVELS: Tuple[float, ...] = (
    5, 10, 16, 22, 28, 34, 40, 46, 52, 59, 66, 73, 80, 87, 94, 101,
    113, 125, 137, 149, 161, 173, 185, 197, 217, 237, 257, 277, 297,
    322, 347, 372, 397, 422, 447, 472, 497, 522, 547, 572, 602, 634,
)


class DepthBinTable:
    """
    Fixed, strictly increasing depth levels for profile variables.

    Each level owns the cell between the midpoints to its neighbours. The
    first cell starts at the surface and the last cell ends half a level
    spacing below the deepest level.

    Example:
        table = DepthBinTable()
        table.bin_for(7.2)   # -> 5.0
        table.bin_for(900)   # -> None
    """

    def __init__(self, levels: Sequence[float] = DEFAULT_DEPTH_LEVELS):
        levels = tuple(float(level) for level in levels)
        if not levels:
            raise ValueError("Depth bin table must contain at least one level")
        if levels[0] <= 0:
            raise ValueError(f"Depth levels must be positive, got {levels[0]}")
        for upper, lower in zip(levels, levels[1:]):
            if lower <= upper:
                raise ValueError(
                    f"Depth levels must be strictly increasing, got {upper} then {lower}"
                )
        self._levels = levels

        edges = [0.0]
        edges.extend((a + b) / 2.0 for a, b in zip(levels, levels[1:]))
        if len(levels) > 1:
            edges.append(levels[-1] + (levels[-1] - levels[-2]) / 2.0)
        else:
            edges.append(levels[0] * 2.0)
        self._edges = tuple(edges)

    @property
    def levels(self) -> Tuple[float, ...]:
        return self._levels

    def __len__(self) -> int:
        return len(self._levels)

    def __iter__(self):
        return iter(self._levels)

    def __contains__(self, depth: object) -> bool:
        return depth in self._levels

    def bin_for(self, depth: Optional[float]) -> Optional[float]:
        """
        Map an observed depth to its depth level.

        Args:
            depth: Depth in metres (positive down)

        Returns:
            Depth level owning the depth, or None if outside the table
        """
        if depth is None or depth < 0:
            return None
        for i, level in enumerate(self._levels):
            if self._edges[i] <= depth < self._edges[i + 1]:
                return level
        return None

    def to_list(self) -> list:
        return list(self._levels)


def _validate_variable_table() -> None:
    """Check that every variable has a consistent specification."""
    missing = [v.value for v in Variable if v not in VARIABLE_SPECS]
    if missing:
        raise RuntimeError(f"Variables without specification: {missing}")

    for variable, spec in VARIABLE_SPECS.items():
        low, high = spec.valid_range
        if not low < high:
            raise RuntimeError(
                f"Invalid range for {variable.value}: {spec.valid_range}"
            )
        if spec.is_profile and spec.nominal_depth_m is not None:
            raise RuntimeError(
                f"Profile variable {variable.value} cannot have a nominal depth"
            )


_validate_variable_table()
