"""Finite-difference kinematics for trajectory groups.

Displacement and velocity at row i use rows i-1 and i; acceleration at row i
uses the velocities at i-1 and i. A discontinuity at row i therefore removes
the displacement/velocity of row i and the acceleration of rows i and i+1.
Undefined values stay NaN, nothing is zero-filled or interpolated.
"""

import numpy as np
import pandas as pd
import tqdm

from gap_detector import detect_gaps
from group_partitioner import GroupKey
from kinematics_common import (
    DEFAULT_GAP_THRESHOLD_S,
    DERIVED_COLUMNS,
    SAMPLE_COLUMNS,
)

DIFFERENTIATED_COLUMNS = SAMPLE_COLUMNS + ["is_discontinuity"] + DERIVED_COLUMNS + ["continuity_flag"]


def format_group_key(group_key: tuple) -> str:
    """Flatten a group key to a string usable as a JSON object key."""
    return "|".join(str(part) for part in group_key)


def differentiate_group(
    gap_df: pd.DataFrame,
    *,
    keep_invalid: bool = False,
) -> tuple[pd.DataFrame, dict]:
    """Compute displacement, velocity and acceleration for one group.

    Args:
        gap_df: Output of gap_detector.detect_gaps() for a single group.
        keep_invalid: Return every row (undefined derivatives as NaN) instead
            of only rows with a valid displacement/velocity.

    Returns:
        (derived_df, qc)
        - derived_df: New frame with DERIVED_COLUMNS and 'continuity_flag'
          (True where displacement, velocity and acceleration are all
          defined). By default the first row and discontinuity rows are
          dropped; acceleration stays NaN where the previous velocity is
          missing.
        - qc: {'n_rows_in', 'n_valid_velocity', 'n_valid_acceleration',
          'n_rows_out'}.
    """
    n_rows = len(gap_df)
    x = gap_df["x"].to_numpy(dtype=float)
    y = gap_df["y"].to_numpy(dtype=float)
    dt = gap_df["delta_time"].to_numpy(dtype=float)
    is_discontinuity = gap_df["is_discontinuity"].to_numpy(dtype=bool)

    # first-order validity: a predecessor exists and no gap lies between them
    velocity_valid = np.zeros(n_rows, dtype=bool)
    velocity_valid[1:] = ~is_discontinuity[1:]
    # second-order validity: two consecutive valid velocities
    acceleration_valid = np.zeros(n_rows, dtype=bool)
    acceleration_valid[1:] = velocity_valid[1:] & velocity_valid[:-1]

    dx = np.full(n_rows, np.nan)
    dy = np.full(n_rows, np.nan)
    dx[1:] = np.diff(x)
    dy[1:] = np.diff(y)
    dx[~velocity_valid] = np.nan
    dy[~velocity_valid] = np.nan

    vx = dx / dt
    vy = dy / dt

    ax = np.full(n_rows, np.nan)
    ay = np.full(n_rows, np.nan)
    ax[1:] = (vx[1:] - vx[:-1]) / dt[1:]
    ay[1:] = (vy[1:] - vy[:-1]) / dt[1:]
    ax[~acceleration_valid] = np.nan
    ay[~acceleration_valid] = np.nan

    derived_df = gap_df.copy()
    derived_df["displacement_x"] = dx
    derived_df["displacement_y"] = dy
    derived_df["displacement_magnitude"] = np.hypot(dx, dy)
    derived_df["velocity_x"] = vx
    derived_df["velocity_y"] = vy
    derived_df["velocity_magnitude"] = np.hypot(vx, vy)
    derived_df["acceleration_x"] = ax
    derived_df["acceleration_y"] = ay
    derived_df["acceleration_magnitude"] = np.hypot(ax, ay)
    derived_df["continuity_flag"] = acceleration_valid
    derived_df = derived_df.loc[:, DIFFERENTIATED_COLUMNS]

    if not keep_invalid:
        derived_df = derived_df.loc[velocity_valid].reset_index(drop=True)

    qc = {
        "n_rows_in": int(n_rows),
        "n_valid_velocity": int(velocity_valid.sum()),
        "n_valid_acceleration": int(acceleration_valid.sum()),
        "n_rows_out": int(len(derived_df)),
    }
    return derived_df, qc


def differentiate_all(
    groups: dict[GroupKey, pd.DataFrame],
    gap_threshold: float = DEFAULT_GAP_THRESHOLD_S,
    *,
    strict: bool = False,
    show_progress: bool = True,
) -> tuple[pd.DataFrame, dict]:
    """Run gap detection and differentiation on every group.

    Groups share no state and are processed one after another in key order.

    Args:
        groups: Output of group_partitioner.partition_groups().
        gap_threshold: Discontinuity threshold in seconds.
        strict: Raise on non-monotonic timestamps instead of excluding rows.
        show_progress: Show a tqdm progress bar.

    Returns:
        (derived_df, qc)
        - derived_df: All groups' valid rows concatenated, fresh index.
        - qc: aggregate counters plus 'non_monotonic' rows and
          'discontinuities_per_group'.
    """
    frames: list[pd.DataFrame] = []
    qc = {
        "n_groups": len(groups),
        "n_rows_in": 0,
        "n_non_monotonic": 0,
        "n_discontinuities": 0,
        "n_rows_out": 0,
        "n_acceleration_undefined": 0,
        "non_monotonic": [],
        "discontinuities_per_group": {},
    }

    iterator = tqdm.tqdm(groups.items(), desc="Differentiating groups", disable=not show_progress)
    for group_key, group_df in iterator:
        gap_df, gap_qc = detect_gaps(group_df, gap_threshold, group_key, strict=strict)
        derived_df, diff_qc = differentiate_group(gap_df)

        qc["n_rows_in"] += gap_qc["n_rows_in"]
        qc["n_non_monotonic"] += gap_qc["n_non_monotonic"]
        qc["n_discontinuities"] += gap_qc["n_discontinuities"]
        qc["non_monotonic"].extend(gap_qc["non_monotonic"])
        if gap_qc["n_discontinuities"]:
            qc["discontinuities_per_group"][format_group_key(group_key)] = gap_qc["n_discontinuities"]
        qc["n_rows_out"] += diff_qc["n_rows_out"]
        qc["n_acceleration_undefined"] += int((~derived_df["continuity_flag"]).sum())

        frames.append(derived_df)

    if not frames:
        return pd.DataFrame(columns=DIFFERENTIATED_COLUMNS), qc

    derived_df = pd.concat(frames, ignore_index=True)
    print(
        f"[INFO] Differentiated {qc['n_groups']} groups: {qc['n_rows_in']} samples -> "
        f"{qc['n_rows_out']} rows ({qc['n_discontinuities']} discontinuities, "
        f"{qc['n_non_monotonic']} non-monotonic samples excluded)."
    )
    return derived_df, qc
