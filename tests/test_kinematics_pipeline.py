import json

import pandas as pd
import pytest

from file_path_gen import FilePathGen
from kinematics_common import (
    OUTPUT_COLUMNS,
    NonMonotonicTimeError,
    PipelineConfig,
    SchemaError,
    read_samples_csv,
)
from kinematics_pipeline import plot_filter_qc, run_pipeline, save_outputs


@pytest.fixture
def two_group_samples(regular_track):
    return pd.concat([
        regular_track(n=21, gap_at=11, subject_id="s1", session_number=1),
        regular_track(n=21, subject_id="s2", session_number=12,
                      condition="VariableDistance", health_status="Impaired"),
    ], ignore_index=True)


def test_pipeline_output_table(two_group_samples):
    output_df, report = run_pipeline(two_group_samples, show_progress=False)

    assert list(output_df.columns) == OUTPUT_COLUMNS
    assert output_df.notna().all().all()
    # s1 loses first row, gap row and the two rows without a previous velocity
    assert (output_df["subject_id"] == "s1").sum() == 17
    assert (output_df["subject_id"] == "s2").sum() == 19
    assert 7.75 not in output_df.loc[output_df["subject_id"] == "s1", "timestamp"].tolist()
    assert set(output_df.loc[output_df["subject_id"] == "s1", "session_group_label"]) == {"1-10"}
    assert set(output_df.loc[output_df["subject_id"] == "s2", "session_group_label"]) == {"11-20"}
    assert output_df.index.tolist() == list(range(36))


def test_pipeline_report(two_group_samples):
    _, report = run_pipeline(two_group_samples, show_progress=False)

    assert report["n_input_rows"] == 42
    assert report["n_groups"] == 2
    assert report["n_out_of_order"] == 0
    assert report["n_derived_rows"] == 39
    assert report["differentiation"]["n_discontinuities"] == 1
    assert [p["n_removed"] for p in report["filter_passes"]] == [0, 0, 3]
    assert report["n_output_rows"] == 36
    assert report["output_rows_by_partition"] == {
        "FixedDistance|Healthy": 17,
        "VariableDistance|Impaired": 19,
    }
    assert report["config"]["gap_threshold"] == 1.0
    json.dumps(report)


def test_pipeline_accepts_larger_gap_threshold(two_group_samples):
    _, report = run_pipeline(two_group_samples, PipelineConfig(gap_threshold=6.0), show_progress=False)
    assert report["differentiation"]["n_discontinuities"] == 0
    assert report["n_derived_rows"] == 40


def test_schema_error_aborts_before_output(two_group_samples):
    broken = two_group_samples.drop(columns=["x"])
    with pytest.raises(SchemaError):
        run_pipeline(broken, show_progress=False)


def test_pipeline_reports_out_of_order_samples(two_group_samples, capsys):
    shuffled = two_group_samples.iloc[[0, 1, 2, 4, 3] + list(range(5, 42))]

    output_df, report = run_pipeline(shuffled, show_progress=False)

    assert report["n_out_of_order"] == 1
    assert report["out_of_order_per_group"] == {"s1|1|FixedDistance": 1}
    assert report["differentiation"]["n_non_monotonic"] == 0
    assert len(output_df) == 36
    assert "[WARN] s1|1|FixedDistance" in capsys.readouterr().out


def test_strict_mode_propagates_non_monotonic(two_group_samples):
    samples = pd.concat([two_group_samples, two_group_samples.iloc[[3]]], ignore_index=True)
    _, report = run_pipeline(samples, show_progress=False)
    assert report["differentiation"]["n_non_monotonic"] == 1

    with pytest.raises(NonMonotonicTimeError):
        run_pipeline(samples, strict=True, show_progress=False)


def test_save_outputs_round_trip(two_group_samples, tmp_path):
    output_df, report = run_pipeline(two_group_samples, show_progress=False)
    fpg = FilePathGen(tmp_path / "run", run_name="trial")

    written = save_outputs(output_df, report, fpg, qc_plot=True)

    assert set(written) == {"cleaned_table", "diagnostics", "config", "qc_plot"}
    cleaned = read_samples_csv(fpg.cleaned_table_path())
    assert list(cleaned.columns) == OUTPUT_COLUMNS
    assert len(cleaned) == 36
    diagnostics = json.loads(fpg.diagnostics_path().read_text(encoding="utf-8"))
    assert diagnostics["n_output_rows"] == 36
    assert json.loads(fpg.config_snapshot_path().read_text(encoding="utf-8"))["session_bin_width"] == 10
    assert fpg.qc_plot_path().exists()


def test_qc_plot_skipped_without_partitions(tmp_path):
    assert plot_filter_qc({"filter_passes": []}, tmp_path / "qc.jpg") is None


@pytest.mark.parametrize("options", [
    {"gap_threshold": 0},
    {"iqr_multiplier": -0.5},
    {"session_bin_width": 0},
    {"session_bin_width": 2.5},
    {"coarse_filter_key": []},
    {"coarse_filter_key": ["speed"]},
    {"gap_threshold": "2"},
    {"gap_threshold": float("nan")},
    {"iqr_multiplier": None},
    {"iqr_multiplier": True},
    {"coarse_filter_key": 5},
])
def test_invalid_config(options):
    with pytest.raises(ValueError):
        PipelineConfig(**options)


def test_config_from_json(tmp_path, capsys):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"gap_threshold": 2.0, "coarse_filter_key": ["condition"],
                                       "colour": "blue"}), encoding="utf-8")

    config = PipelineConfig.from_json(config_path)

    assert config.gap_threshold == 2.0
    assert config.coarse_filter_key == ("condition",)
    assert config.iqr_multiplier == 1.5
    assert "[WARN]" in capsys.readouterr().out
    assert config.to_dict()["coarse_filter_key"] == ["condition"]


def test_read_samples_csv_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_samples_csv(tmp_path / "absent.csv")
