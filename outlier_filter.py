"""Sequential, partition-aware IQR outlier filtering.

The chain trims displacement, then velocity, then acceleration magnitudes.
Every pass recomputes its quartiles from the rows that survived the previous
pass, inside each coarse partition (condition x health status by default),
so the order of the passes matters.
"""

import itertools
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd

from kinematics_common import (
    DEFAULT_COARSE_FILTER_KEY,
    DEFAULT_IQR_MULTIPLIER,
    FILTER_VARIABLES,
    Condition,
    HealthStatus,
)

ENUM_VALUES = {
    "condition": [member.value for member in Condition],
    "health_status": [member.value for member in HealthStatus],
}


@dataclass(frozen=True)
class FilterSpec:
    variable: str
    partition_key: tuple[str, ...] = DEFAULT_COARSE_FILTER_KEY


@dataclass(frozen=True)
class FilterBounds:
    q1: float
    q3: float
    iqr: float
    lower: float
    upper: float
    n_values: int

    def contains(self, values: np.ndarray) -> np.ndarray:
        """Inclusive bounds check, NaN is never inside."""
        values = np.asarray(values, dtype=float)
        return (values >= self.lower) & (values <= self.upper)

    def to_dict(self) -> dict:
        return asdict(self)


def default_filter_chain(partition_key=DEFAULT_COARSE_FILTER_KEY) -> list[FilterSpec]:
    """Displacement, velocity, acceleration magnitude passes, in that order."""
    return [FilterSpec(variable, tuple(partition_key)) for variable in FILTER_VARIABLES]


def compute_bounds(values, iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER) -> FilterBounds | None:
    """Compute IQR bounds with linearly interpolated quartiles.

    Args:
        values: Values of one variable within one partition. NaN is ignored.
        iqr_multiplier: Width of the fence in IQR units.

    Returns:
        FilterBounds, or None if there is no defined value to compute from.
    """
    series = pd.Series(values, dtype=float).dropna()
    if series.empty:
        return None

    q1, q3 = series.quantile([0.25, 0.75], interpolation="linear").to_numpy()
    iqr = q3 - q1
    return FilterBounds(
        q1=float(q1),
        q3=float(q3),
        iqr=float(iqr),
        lower=float(q1 - iqr_multiplier * iqr),
        upper=float(q3 + iqr_multiplier * iqr),
        n_values=int(series.size),
    )


def expected_partitions(partition_key: tuple[str, ...]) -> list[tuple] | None:
    """All partitions a key can produce, when every key column is enumerated."""
    if not all(col in ENUM_VALUES for col in partition_key):
        return None
    return list(itertools.product(*(ENUM_VALUES[col] for col in partition_key)))


def format_partition(partition: tuple) -> str:
    return "|".join(str(part) for part in partition)


def apply_filter_pass(
    derived_df: pd.DataFrame,
    spec: FilterSpec,
    iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER,
) -> tuple[pd.DataFrame, dict]:
    """Run one IQR pass over the current survivors.

    Args:
        derived_df: Rows surviving the previous pass (not modified).
        spec: Variable to trim and the columns partitioning the quartiles.
        iqr_multiplier: Width of the fence in IQR units.

    Returns:
        (survivors_df, record)
        - survivors_df: New frame of rows whose value lies in [lower, upper].
          Rows with an undefined value are removed.
        - record: {'variable', 'partition_key', 'n_rows_in', 'n_rows_out',
          'n_removed', 'removed_rows', 'partitions', 'empty_partitions'}.

    Raises:
        ValueError: If the variable or a partition column is absent, or the
            multiplier is negative.
    """
    if iqr_multiplier < 0:
        raise ValueError(f"iqr_multiplier must be non-negative, got {iqr_multiplier}")
    missing = [col for col in (spec.variable, *spec.partition_key) if col not in derived_df.columns]
    if missing:
        raise ValueError(f"Columns not found for filter pass: {missing}")

    keep = np.zeros(len(derived_df), dtype=bool)
    partitions: list[dict] = []
    empty_partitions: list[str] = []
    seen: set[tuple] = set()

    if not derived_df.empty:
        grouped = derived_df.groupby(list(spec.partition_key), sort=True)
        # positional rows per partition, index labels may repeat
        for key, rows in sorted(grouped.indices.items()):
            part_df = derived_df.iloc[rows]
            key = key if isinstance(key, tuple) else (key,)
            seen.add(key)
            label = format_partition(key)

            bounds = compute_bounds(part_df[spec.variable], iqr_multiplier)
            if bounds is None:
                empty_partitions.append(label)
                print(f"[INFO] {spec.variable}: partition {label} has no defined values, nothing to filter.")
                continue

            in_bounds = bounds.contains(part_df[spec.variable].to_numpy(dtype=float))
            keep[rows] = in_bounds
            partitions.append({
                "partition": label,
                **bounds.to_dict(),
                "n_rows": int(len(part_df)),
                "n_removed": int((~in_bounds).sum()),
            })

    for key in expected_partitions(spec.partition_key) or []:
        if key not in seen:
            empty_partitions.append(format_partition(key))

    survivors_df = derived_df.loc[keep].copy()
    removed_rows = [int(label) if isinstance(label, (int, np.integer)) else str(label)
                    for label in derived_df.index[~keep]]
    record = {
        "variable": spec.variable,
        "partition_key": list(spec.partition_key),
        "n_rows_in": int(len(derived_df)),
        "n_rows_out": int(len(survivors_df)),
        "n_removed": len(removed_rows),
        "removed_rows": removed_rows,
        "partitions": partitions,
        "empty_partitions": empty_partitions,
    }
    return survivors_df, record


def run_filter_chain(
    derived_df: pd.DataFrame,
    specs: list[FilterSpec] | None = None,
    iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER,
    partition_key=DEFAULT_COARSE_FILTER_KEY,
) -> tuple[pd.DataFrame, list[dict]]:
    """Fold the filter passes over the derived rows.

    Each pass consumes the survivors of the previous one; the passes are not
    independent masks.

    Args:
        derived_df: Output of kinematic_differentiator.differentiate_all().
        specs: Ordered passes. Defaults to default_filter_chain(partition_key).
        iqr_multiplier: Width of the fence in IQR units.
        partition_key: Partition columns for the default chain.

    Returns:
        (survivors_df, records) with one record per pass, in pass order.
    """
    if specs is None:
        specs = default_filter_chain(partition_key)

    survivors_df = derived_df
    records: list[dict] = []
    for spec in specs:
        survivors_df, record = apply_filter_pass(survivors_df, spec, iqr_multiplier)
        records.append(record)
        print(
            f"[INFO] Filter pass '{spec.variable}': {record['n_rows_in']} -> {record['n_rows_out']} rows "
            f"({record['n_removed']} removed)."
        )
    return survivors_df, records
