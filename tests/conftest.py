import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


def _track(timestamps, xs, ys=None, *, subject_id="s1", session_number=1,
           condition="FixedDistance", health_status="Healthy") -> pd.DataFrame:
    timestamps = np.asarray(timestamps, dtype=float)
    xs = np.asarray(xs, dtype=float)
    ys = np.zeros_like(xs) if ys is None else np.asarray(ys, dtype=float)
    return pd.DataFrame({
        "subject_id": subject_id,
        "session_number": session_number,
        "condition": condition,
        "health_status": health_status,
        "timestamp": timestamps,
        "x": xs,
        "y": ys,
    })


@pytest.fixture
def make_track():
    """Factory for one tagged trajectory as a sample table."""
    return _track


@pytest.fixture
def regular_track():
    """Factory for a 0.25 s sampled track with alternating 1/2 unit x steps.

    All derived values are exact in binary floating point: displacement 1 or
    2, velocity 4 or 8, acceleration magnitude 16. An optional gap of gap_s
    seconds is inserted before sample index gap_at.
    """
    def factory(n=21, gap_at=None, gap_s=5.0, **tags):
        index = np.arange(n)
        timestamps = index * 0.25
        if gap_at is not None:
            timestamps = timestamps + np.where(index >= gap_at, gap_s, 0.0)
        steps = np.where(index % 2 == 1, 1.0, 2.0)
        steps[0] = 0.0
        return _track(timestamps, np.cumsum(steps), **tags)

    return factory
