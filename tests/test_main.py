import json

import pandas as pd
import pytest

from kinematics_common import DEFAULT_SESSION_BIN_WIDTH
from main import build_parser, main


@pytest.fixture
def samples_csv(regular_track, tmp_path):
    samples = pd.concat([
        regular_track(n=21, gap_at=11, subject_id="007"),
        regular_track(n=21, subject_id="s2", health_status="Impaired"),
    ], ignore_index=True)
    csv_path = tmp_path / "samples.csv"
    samples.to_csv(csv_path, index=False)
    return csv_path


def test_bin_command(capsys):
    assert main(["bin", "14"]) == 0
    assert capsys.readouterr().out.strip() == "11-20"
    assert main(["bin", "14", "--width", "5"]) == 0
    assert capsys.readouterr().out.strip() == "11-15"


def test_bin_width_defaults_to_pipeline_default():
    assert build_parser().parse_args(["bin", "3"]).width == DEFAULT_SESSION_BIN_WIDTH


def test_bin_command_rejects_zero(capsys):
    assert main(["bin", "0"]) == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_run_command_writes_outputs(samples_csv, tmp_path):
    out_dir = tmp_path / "out"
    assert main(["run", str(samples_csv), "--output-dir", str(out_dir), "--no-progress", "--qc-plot"]) == 0

    cleaned = pd.read_csv(out_dir / "kinematics_cleaned.csv", dtype={"subject_id": str})
    assert set(cleaned["subject_id"]) == {"007", "s2"}
    assert len(cleaned) == 36
    assert (out_dir / "kinematics_diagnostics.json").exists()
    assert (out_dir / "kinematics_filter_qc.jpg").exists()


def test_run_command_merges_config_file_and_flags(samples_csv, tmp_path):
    config_path = tmp_path / "options.json"
    config_path.write_text(json.dumps({"gap_threshold": 10.0, "session_bin_width": 5}), encoding="utf-8")
    out_dir = tmp_path / "out"

    assert main(["run", str(samples_csv), "--output-dir", str(out_dir), "--run-name", "merged",
                 "--config", str(config_path), "--session-bin-width", "20", "--no-progress"]) == 0

    snapshot = json.loads((out_dir / "merged_config.json").read_text(encoding="utf-8"))
    assert snapshot["gap_threshold"] == 10.0
    assert snapshot["session_bin_width"] == 20


def test_run_command_reports_missing_input(tmp_path, capsys):
    assert main(["run", str(tmp_path / "absent.csv"), "--output-dir", str(tmp_path / "out")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()


def test_run_command_reports_schema_error(samples_csv, tmp_path, capsys):
    broken = pd.read_csv(samples_csv).drop(columns=["condition"])
    broken.to_csv(samples_csv, index=False)

    assert main(["run", str(samples_csv), "--output-dir", str(tmp_path / "out"), "--no-progress"]) == 1
    assert "condition" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()


def test_run_command_reports_bad_config_value(samples_csv, tmp_path, capsys):
    config_path = tmp_path / "options.json"
    config_path.write_text(json.dumps({"gap_threshold": "2"}), encoding="utf-8")

    assert main(["run", str(samples_csv), "--output-dir", str(tmp_path / "out"),
                 "--config", str(config_path), "--no-progress"]) == 1
    assert "gap_threshold" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()
