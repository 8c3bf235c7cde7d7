"""Fixed-width session bins for later aggregation.

Sessions 1..10 fall in bin 1 ("1-10"), 11..20 in bin 2 ("11-20"), and so on.
Binning only labels rows, it never filters.
"""

import math

import numpy as np
import pandas as pd

from kinematics_common import DEFAULT_SESSION_BIN_WIDTH


def _check_positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def session_bin(session_number: int, width: int = DEFAULT_SESSION_BIN_WIDTH) -> int:
    """1-based bin index, ceil(session_number / width)."""
    session_number = _check_positive_int(session_number, "session_number")
    width = _check_positive_int(width, "width")
    return math.ceil(session_number / width)


def session_bin_label(session_number: int, width: int = DEFAULT_SESSION_BIN_WIDTH) -> str:
    """Inclusive session range of the bin, e.g. 14 -> '11-20' for width 10."""
    bin_index = session_bin(session_number, width)
    first = (bin_index - 1) * width + 1
    last = bin_index * width
    return f"{first}-{last}"


def add_session_group_labels(derived_df: pd.DataFrame, width: int = DEFAULT_SESSION_BIN_WIDTH) -> pd.DataFrame:
    """Return a copy with a 'session_group_label' column."""
    width = _check_positive_int(width, "width")
    labeled_df = derived_df.copy()
    labels = {n: session_bin_label(n, width) for n in labeled_df["session_number"].unique()}
    labeled_df["session_group_label"] = labeled_df["session_number"].map(labels).astype(object)
    return labeled_df
