"""Sampling-interval checks for one trajectory group.

The tracker samples roughly every 0.17 s. Intervals longer than the gap
threshold are sensor dropouts: they are flagged so that no derivative is
computed across them. Missing samples are never reconstructed.
"""

import numpy as np
import pandas as pd

from kinematics_common import DEFAULT_GAP_THRESHOLD_S, NonMonotonicTimeError


def drop_non_monotonic(
    group_df: pd.DataFrame,
    group_key: tuple = (),
    *,
    strict: bool = False,
) -> tuple[pd.DataFrame, list[dict]]:
    """Remove rows whose timestamp does not strictly increase.

    A row is kept only if its timestamp is greater than the last kept one, so
    duplicates keep their first occurrence.

    Args:
        group_df: Timestamp-sorted rows of a single group.
        group_key: Group key, used in messages only.
        strict: Raise instead of dropping.

    Returns:
        (kept_df, dropped) where dropped lists {'group', 'timestamp',
        'previous'} for each excluded row.

    Raises:
        NonMonotonicTimeError: On the first offending row when strict is True.
    """
    timestamps = group_df["timestamp"].to_numpy(dtype=float)
    keep = np.ones(len(timestamps), dtype=bool)
    dropped: list[dict] = []

    last = -np.inf
    for i, ts in enumerate(timestamps):
        if ts > last:
            last = ts
            continue
        if strict:
            raise NonMonotonicTimeError(group_key, float(ts), float(last))
        keep[i] = False
        dropped.append({"group": list(group_key), "timestamp": float(ts), "previous": float(last)})
        print(f"[WARN] {NonMonotonicTimeError(group_key, float(ts), float(last))}. Row excluded.")

    if not dropped:
        return group_df.copy(), dropped
    return group_df.loc[keep].reset_index(drop=True), dropped


def detect_gaps(
    group_df: pd.DataFrame,
    gap_threshold: float = DEFAULT_GAP_THRESHOLD_S,
    group_key: tuple = (),
    *,
    strict: bool = False,
) -> tuple[pd.DataFrame, dict]:
    """Add delta_time and is_discontinuity columns to a trajectory group.

    Args:
        group_df: Timestamp-sorted rows of a single group (see
            group_partitioner.partition_groups()).
        gap_threshold: Intervals strictly longer than this (seconds) mark a
            discontinuity boundary.
        group_key: Group key, used in diagnostics only.
        strict: Raise NonMonotonicTimeError instead of excluding rows.

    Returns:
        (gap_df, qc)
        - gap_df: New frame with 'delta_time' (NaN on the first row) and
          'is_discontinuity'. Non-monotonic rows are removed.
        - qc: counters {'n_rows_in', 'n_rows_out', 'n_non_monotonic',
          'n_discontinuities'} and the 'non_monotonic' row list.

    Raises:
        ValueError: If gap_threshold is not positive.
    """
    if not gap_threshold > 0:
        raise ValueError(f"gap_threshold must be positive, got {gap_threshold}")

    gap_df, dropped = drop_non_monotonic(group_df, group_key, strict=strict)

    delta_time = gap_df["timestamp"].diff()
    gap_df["delta_time"] = delta_time
    # NaN on the first row compares False, the first row is no boundary
    gap_df["is_discontinuity"] = (delta_time > gap_threshold).to_numpy()

    qc = {
        "n_rows_in": int(len(group_df)),
        "n_rows_out": int(len(gap_df)),
        "n_non_monotonic": len(dropped),
        "n_discontinuities": int(gap_df["is_discontinuity"].sum()),
        "non_monotonic": dropped,
    }
    return gap_df, qc
