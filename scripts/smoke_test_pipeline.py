"""Smoke test runner for the trajectory kinematics pipeline.
!!! WARNING !!!
This script will delete the output directory (scripts/kinematics_smoke/ by default) before running.
!!! WARNING !!!

This script builds a small synthetic sample table (seeded, so reruns are
identical), writes it as CSV, then runs the full pipeline on it the same way
`main.py run` does.

Goals:
1) Fast feedback loop for refactor debugging.
2) Stable small-sample regression checks.
3) Keep smoke outputs isolated from normal pipeline outputs.

The synthetic trajectories carry the anomalies the pipeline has to handle:
sensor dropouts longer than the gap threshold, duplicated timestamps and
position spikes that the outlier filter should trim.

If the pipeline output changes by design, regenerate smoke_summary.json and
treat the updated csv_sha256 as the new baseline.
"""

from __future__ import annotations

import argparse
import hashlib
import json
import shutil
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add the repo root to sys.path to import the pipeline modules
sys.path.append(str(Path(__file__).resolve().parent.parent))

from file_path_gen import FilePathGen
from kinematics_common import Condition, HealthStatus, PipelineConfig
from kinematics_pipeline import run_pipeline, save_outputs

SAMPLE_PERIOD_S = 0.17
SAMPLE_JITTER_S = 0.02


def build_synthetic_samples(
    n_subjects: int,
    n_sessions: int,
    samples_per_session: int,
    seed: int,
) -> pd.DataFrame:
    """Generate tagged trajectory samples for every (subject, session, condition)."""
    rng = np.random.default_rng(seed)
    records: list[dict] = []

    for subject_index in range(1, n_subjects + 1):
        subject_id = f"s{subject_index}"
        # alternate health status so both partitions are populated
        health_status = HealthStatus.HEALTHY if subject_index % 2 else HealthStatus.IMPAIRED

        for session_number in range(1, n_sessions + 1):
            for condition in Condition:
                steps = SAMPLE_PERIOD_S + rng.uniform(-SAMPLE_JITTER_S, SAMPLE_JITTER_S, samples_per_session)
                steps[0] = 0.0
                # one sensor dropout per trajectory
                gap_index = rng.integers(2, samples_per_session)
                steps[gap_index] += rng.uniform(3.0, 15.0)
                timestamps = np.cumsum(steps)
                # one duplicated capture, before the dropout so it cannot hide it
                dup = rng.integers(1, gap_index)
                timestamps[dup] = timestamps[dup - 1]

                x = np.cumsum(rng.normal(0.0, 1.0, samples_per_session))
                y = np.cumsum(rng.normal(0.0, 1.0, samples_per_session))
                # tracking spike
                spike = rng.integers(0, samples_per_session)
                x[spike] += 40.0

                for t, px, py in zip(timestamps, x, y):
                    records.append({
                        "timestamp": float(t),
                        "x": float(px),
                        "y": float(py),
                        "subject_id": subject_id,
                        "condition": condition.value,
                        "session_number": session_number,
                        "health_status": health_status.value,
                    })

    return pd.DataFrame(records)


def csv_digests(output_dir: Path) -> dict[str, str]:
    """SHA256 of every CSV the run left behind, for baseline comparison."""
    return {p.name: hashlib.sha256(p.read_bytes()).hexdigest() for p in sorted(output_dir.glob("*.csv"))}


def run_smoke(output_dir: Path, n_subjects: int, n_sessions: int, samples_per_session: int,
              seed: int, qc_plot: bool = False) -> dict:
    """Generate data, run the pipeline and return the smoke summary."""
    # fresh output directory per run
    shutil.rmtree(output_dir, ignore_errors=True)
    output_dir.mkdir(parents=True)

    samples_df = build_synthetic_samples(n_subjects, n_sessions, samples_per_session, seed)
    input_csv = output_dir / "smoke_samples.csv"
    samples_df.to_csv(input_csv, index=False)
    print(f"[SMOKE] Generated {len(samples_df)} samples -> {input_csv}")

    output_df, report = run_pipeline(pd.read_csv(input_csv, dtype={"subject_id": str}),
                                     PipelineConfig(), show_progress=False)
    written = save_outputs(output_df, report, FilePathGen(output_dir, run_name="smoke"), qc_plot=qc_plot)

    return {
        "seed": seed,
        "run_stats": {
            "input_rows": report["n_input_rows"],
            "groups": report["n_groups"],
            "derived_rows": report["n_derived_rows"],
            "output_rows": report["n_output_rows"],
            "discontinuities": report["differentiation"]["n_discontinuities"],
            "non_monotonic": report["differentiation"]["n_non_monotonic"],
            "removed_per_pass": {r["variable"]: r["n_removed"] for r in report["filter_passes"]},
            "output_columns": list(output_df.columns),
        },
        "written": written,
        "csv_sha256": csv_digests(output_dir),
    }


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the kinematics pipeline on a small synthetic dataset."
    )
    parser.add_argument("--subjects", type=int, default=4, help="Number of subjects (default: 4).")
    parser.add_argument("--sessions", type=int, default=12, help="Sessions per subject (default: 12).")
    parser.add_argument("--samples", type=int, default=60, help="Samples per trajectory (default: 60).")
    parser.add_argument("--seed", type=int, default=7, help="Random seed (default: 7).")
    parser.add_argument(
        "--output-dir-name",
        type=str,
        default="kinematics_smoke",
        help="Output directory name under scripts/.",
    )
    parser.add_argument(
        "--summary-name",
        type=str,
        default="smoke_summary.json",
        help="Summary JSON filename inside the smoke output directory.",
    )
    parser.add_argument("--qc-plot", action="store_true", help="Also render the filter QC plot.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    script_dir = Path(__file__).resolve().parent
    smoke_output_dir = script_dir / args.output_dir_name

    summary = run_smoke(
        smoke_output_dir,
        n_subjects=max(1, args.subjects),
        n_sessions=max(1, args.sessions),
        samples_per_session=max(5, args.samples),
        seed=args.seed,
        qc_plot=args.qc_plot,
    )

    summary_path = smoke_output_dir / args.summary_name
    summary_path.write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"[SMOKE] Summary saved to {summary_path}")


if __name__ == "__main__":
    main()
