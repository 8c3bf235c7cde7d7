"""Common definitions for the trajectory kinematics pipeline.

This module provides shared constants, enumerations, column names, the
pipeline configuration and table I/O helpers used by every stage of the
pipeline (partitioning, gap detection, differentiation, outlier filtering
and session binning).
"""

import json
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

import pandas as pd


# =============================================================================
# Constants: Defaults
# =============================================================================

DEFAULT_GAP_THRESHOLD_S = 1.0      # sampling target is ~0.17 s, dropouts are much longer
DEFAULT_IQR_MULTIPLIER = 1.5
DEFAULT_SESSION_BIN_WIDTH = 10
DEFAULT_COARSE_FILTER_KEY = ("condition", "health_status")


# =============================================================================
# Data Model
# =============================================================================

class Condition(str, Enum):
    FIXED_DISTANCE = "FixedDistance"
    VARIABLE_DISTANCE = "VariableDistance"


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    IMPAIRED = "Impaired"


@dataclass(frozen=True)
class Sample:
    """One tracker observation, already tagged by the ingestion step."""

    subject_id: str
    session_number: int
    condition: Condition
    health_status: HealthStatus
    timestamp: float
    x: float
    y: float

    def to_record(self) -> dict:
        record = asdict(self)
        # labels are checked in group_partitioner.validate_samples()
        record["condition"] = getattr(self.condition, "value", self.condition)
        record["health_status"] = getattr(self.health_status, "value", self.health_status)
        return record


# =============================================================================
# Column Names
# =============================================================================

GROUP_KEY_COLUMNS = ["subject_id", "session_number", "condition"]

SAMPLE_COLUMNS = [
    "subject_id",
    "session_number",
    "condition",
    "health_status",
    "timestamp",
    "x",
    "y",
]

DISPLACEMENT_COLUMNS = ["displacement_x", "displacement_y", "displacement_magnitude"]
VELOCITY_COLUMNS = ["velocity_x", "velocity_y", "velocity_magnitude"]
ACCELERATION_COLUMNS = ["acceleration_x", "acceleration_y", "acceleration_magnitude"]

DERIVED_COLUMNS = (
    ["delta_time"] + DISPLACEMENT_COLUMNS + VELOCITY_COLUMNS + ACCELERATION_COLUMNS
)

# Collaborators index the output table by name, keep this order stable.
OUTPUT_COLUMNS = SAMPLE_COLUMNS + DERIVED_COLUMNS + ["session_group_label"]

FILTER_VARIABLES = [
    "displacement_magnitude",
    "velocity_magnitude",
    "acceleration_magnitude",
]


# =============================================================================
# Errors
# =============================================================================

class SchemaError(ValueError):
    """Input record is missing a required field or has a field of the wrong type."""


class NonMonotonicTimeError(ValueError):
    """Timestamp within a group is not strictly greater than its predecessor."""

    def __init__(self, group_key: tuple, timestamp: float, previous: float):
        self.group_key = group_key
        self.timestamp = timestamp
        self.previous = previous
        super().__init__(
            f"group {group_key}: timestamp {timestamp} does not follow {previous}"
        )


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class PipelineConfig:
    gap_threshold: float = DEFAULT_GAP_THRESHOLD_S
    iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER
    session_bin_width: int = DEFAULT_SESSION_BIN_WIDTH
    coarse_filter_key: tuple[str, ...] = field(default=DEFAULT_COARSE_FILTER_KEY)

    def __post_init__(self):
        if not isinstance(self.coarse_filter_key, (list, tuple)):
            raise ValueError(f"coarse_filter_key must be a list of columns, got {self.coarse_filter_key!r}")
        self.coarse_filter_key = tuple(self.coarse_filter_key)
        self.validate()

    def validate(self) -> None:
        """Check option values.

        Raises:
            ValueError: If an option is out of range or names an unknown column.
        """
        for name in ("gap_threshold", "iqr_multiplier"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
                raise ValueError(f"{name} must be a number, got {value!r}")
        if not self.gap_threshold > 0:
            raise ValueError(f"gap_threshold must be positive, got {self.gap_threshold}")
        if self.iqr_multiplier < 0:
            raise ValueError(f"iqr_multiplier must be non-negative, got {self.iqr_multiplier}")
        if isinstance(self.session_bin_width, bool) or not isinstance(self.session_bin_width, int) \
                or self.session_bin_width <= 0:
            raise ValueError(
                f"session_bin_width must be a positive integer, got {self.session_bin_width!r}"
            )
        if not self.coarse_filter_key:
            raise ValueError("coarse_filter_key must name at least one column")
        unknown = [col for col in self.coarse_filter_key if col not in SAMPLE_COLUMNS]
        if unknown:
            raise ValueError(f"coarse_filter_key has unknown columns: {unknown}")

    @classmethod
    def from_dict(cls, options: dict) -> "PipelineConfig":
        known = {k: v for k, v in options.items() if k in cls.__dataclass_fields__}
        ignored = sorted(set(options) - set(known))
        if ignored:
            print(f"[WARN] Ignoring unknown config options: {ignored}")
        return cls(**known)

    @classmethod
    def from_json(cls, config_path: Path) -> "PipelineConfig":
        """Load options from a JSON object file."""
        options = json.loads(Path(config_path).read_text(encoding="utf-8"))
        if not isinstance(options, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        return cls.from_dict(options)

    def to_dict(self) -> dict:
        options = asdict(self)
        options["coarse_filter_key"] = list(self.coarse_filter_key)
        return options


# =============================================================================
# Table I/O
# =============================================================================

def read_samples_csv(csv_path: Path) -> pd.DataFrame:
    """Read a sample table exported by the ingestion step.

    The table must already carry the sample columns; no metadata is derived
    from the file name. Values are left as read, schema checks happen in
    group_partitioner.validate_samples().

    Args:
        csv_path: Path to a CSV file with the sample columns.

    Returns:
        Raw DataFrame as read from disk.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Input table not found: {csv_path}")
    # subject ids like "007" must stay strings
    return pd.read_csv(csv_path, dtype={"subject_id": str})


def write_output_csv(output_df: pd.DataFrame, csv_path: Path) -> Path:
    """Write the cleaned table with the stable output column order.

    Args:
        output_df: Frame holding at least OUTPUT_COLUMNS.
        csv_path: Destination path, parent folders are created.

    Returns:
        The path written.

    Outputs:
        Writes csv_path.
    """
    csv_path = Path(csv_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    table = output_df.loc[:, OUTPUT_COLUMNS]
    table.to_csv(csv_path, index=False)
    return csv_path
