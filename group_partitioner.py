"""Schema validation and grouping of raw trajectory samples.

Every kinematic quantity is local to one trajectory group, keyed by
(subject_id, session_number, condition). This module checks the input
contract once at the boundary, assigns the enumerated labels, and splits the
table into timestamp-ordered per-group sequences.
"""

from collections.abc import Iterable

import numpy as np
import pandas as pd

from kinematics_common import (
    GROUP_KEY_COLUMNS,
    SAMPLE_COLUMNS,
    Condition,
    HealthStatus,
    Sample,
    SchemaError,
)

GroupKey = tuple[str, int, str]

NUMERIC_COLUMNS = ["timestamp", "x", "y"]
ENUM_COLUMNS = {"condition": Condition, "health_status": HealthStatus}


def _to_frame(samples) -> pd.DataFrame:
    if isinstance(samples, pd.DataFrame):
        return samples.copy()
    if isinstance(samples, Iterable):
        try:
            records = [s.to_record() if isinstance(s, Sample) else dict(s) for s in samples]
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Malformed sample record: {e}") from e
        return pd.DataFrame(records, columns=SAMPLE_COLUMNS if not records else None)
    raise SchemaError(f"Unsupported sample container: {type(samples).__name__}")


def _first_bad_rows(mask: pd.Series, limit: int = 5) -> list:
    return mask[mask].index[:limit].tolist()


def _coerce_enum(values: pd.Series, enum_cls) -> pd.Series:
    valid_labels = {member.value for member in enum_cls}
    labels = values.map(lambda v: v.value if isinstance(v, enum_cls) else v)
    bad = ~labels.isin(valid_labels)
    if bad.any():
        found = sorted({str(v) for v in labels[bad]})
        raise SchemaError(
            f"Column '{values.name}' has unknown labels {found} "
            f"(expected one of {sorted(valid_labels)}), rows {_first_bad_rows(bad)}"
        )
    return labels.astype(str)


def validate_samples(samples) -> pd.DataFrame:
    """Check the sample contract and return a canonical copy of the table.

    Args:
        samples: DataFrame, list of dicts, or list of Sample records carrying
            the sample columns.

    Returns:
        New DataFrame with columns SAMPLE_COLUMNS (in that order, extra input
        columns dropped): subject_id as str, session_number as int64,
        condition/health_status as their enumerated labels, timestamp/x/y as
        float64.

    Raises:
        SchemaError: If a required column or value is missing, or a value has
            the wrong type. No partial output is produced.
    """
    frame = _to_frame(samples)

    missing_cols = [col for col in SAMPLE_COLUMNS if col not in frame.columns]
    if missing_cols:
        raise SchemaError(f"Missing required columns: {missing_cols}")

    frame = frame.loc[:, SAMPLE_COLUMNS].copy()

    for col in SAMPLE_COLUMNS:
        missing = frame[col].isna()
        if missing.any():
            raise SchemaError(
                f"Column '{col}' has {int(missing.sum())} missing values, rows {_first_bad_rows(missing)}"
            )

    for col in NUMERIC_COLUMNS:
        numeric = pd.to_numeric(frame[col], errors="coerce").astype(float)
        bad = ~np.isfinite(numeric)
        if bad.any():
            raise SchemaError(f"Column '{col}' must hold finite numbers, rows {_first_bad_rows(bad)}")
        frame[col] = numeric

    sessions = pd.to_numeric(frame["session_number"], errors="coerce").astype(float)
    bad = ~np.isfinite(sessions) | (sessions % 1 != 0) | (sessions <= 0)
    if bad.any():
        raise SchemaError(
            f"Column 'session_number' must hold positive integers, rows {_first_bad_rows(bad)}"
        )
    frame["session_number"] = sessions.astype("int64")

    for col, enum_cls in ENUM_COLUMNS.items():
        frame[col] = _coerce_enum(frame[col], enum_cls)

    frame["subject_id"] = frame["subject_id"].astype(str)
    return frame.reset_index(drop=True)


def partition_groups(samples_df: pd.DataFrame) -> dict[GroupKey, pd.DataFrame]:
    """Split validated samples into timestamp-ordered trajectory groups.

    Args:
        samples_df: Output of validate_samples().

    Returns:
        Dict of {(subject_id, session_number, condition): group_df}, keys in
        sorted order. Each group_df is a new frame sorted by timestamp with a
        stable sort and indexed 0..n-1. No rows are dropped or moved across
        groups.
    """
    groups: dict[GroupKey, pd.DataFrame] = {}
    if samples_df.empty:
        return groups

    for key, group_df in samples_df.groupby(GROUP_KEY_COLUMNS, sort=True):
        subject_id, session_number, condition = key
        ordered = group_df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)
        groups[(str(subject_id), int(session_number), str(condition))] = ordered
    return groups


def count_out_of_order(samples_df: pd.DataFrame) -> dict[GroupKey, int]:
    """Samples captured earlier than a sample listed before them in their group.

    partition_groups() reorders these by time; the counts let the caller
    report the reordering. Groups without such samples are omitted.
    """
    counts: dict[GroupKey, int] = {}
    if samples_df.empty:
        return counts

    grouped = samples_df.groupby(GROUP_KEY_COLUMNS, sort=True)
    prev_max = grouped["timestamp"].transform(lambda ts: ts.cummax().shift())
    late = samples_df["timestamp"] < prev_max
    for key, n_late in late.groupby([samples_df[col] for col in GROUP_KEY_COLUMNS], sort=True).sum().items():
        if n_late:
            subject_id, session_number, condition = key
            counts[(str(subject_id), int(session_number), str(condition))] = int(n_late)
    return counts
