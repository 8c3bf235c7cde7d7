import pandas as pd
import pytest

from session_binner import add_session_group_labels, session_bin, session_bin_label


@pytest.mark.parametrize("session_number, expected", [
    (1, "1-10"),
    (10, "1-10"),
    (11, "11-20"),
    (20, "11-20"),
    (21, "21-30"),
])
def test_default_width_labels(session_number, expected):
    assert session_bin_label(session_number) == expected


def test_bin_index_and_custom_width():
    assert session_bin(1) == 1
    assert session_bin(21) == 3
    assert session_bin(7, width=5) == 2
    assert session_bin_label(7, width=5) == "6-10"
    assert session_bin_label(3, width=1) == "3-3"


@pytest.mark.parametrize("session_number", [0, -4, 2.5, True, "3"])
def test_rejects_non_positive_integers(session_number):
    with pytest.raises(ValueError):
        session_bin(session_number)


def test_rejects_bad_width():
    with pytest.raises(ValueError):
        session_bin(3, width=0)


def test_add_labels_returns_copy():
    frame = pd.DataFrame({"session_number": [1, 12, 30, 31]})
    labeled = add_session_group_labels(frame)
    assert labeled["session_group_label"].tolist() == ["1-10", "11-20", "21-30", "31-40"]
    assert "session_group_label" not in frame.columns
