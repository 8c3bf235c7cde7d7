"""Trajectory kinematics pipeline - from tagged samples to a cleaned kinematic table.

Data Pipeline:
1. Validate the sample table (schema errors abort before any output exists)
2. Partition samples into (subject, session, condition) groups, ordered by time;
   samples listed out of time order are counted and reordered
3. Per group: compute delta_time, flag gaps longer than gap_threshold, drop
   non-monotonic samples
4. Per group: displacement / velocity / acceleration, excluding derivatives
   that would straddle a gap
5. Trim displacement, velocity and acceleration magnitude outliers in turn,
   quartiles pooled per (condition, health_status)
6. Label session bins and emit the flat output table with a diagnostics report

Outputs (see file_path_gen.FilePathGen):
    - <run>_cleaned.csv, <run>_diagnostics.json, <run>_config.json
    - <run>_filter_qc.jpg (optional)
"""

import json
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from file_path_gen import FilePathGen
from group_partitioner import count_out_of_order, partition_groups, validate_samples
from kinematic_differentiator import differentiate_all, format_group_key
from kinematics_common import OUTPUT_COLUMNS, PipelineConfig, write_output_csv
from outlier_filter import format_partition, run_filter_chain
from session_binner import add_session_group_labels

QC_PLOT_DPI = 150


def count_by_partition(frame: pd.DataFrame, partition_key) -> dict[str, int]:
    """Row counts per coarse partition, keyed by the joined partition label."""
    if frame.empty:
        return {}
    sizes = frame.groupby(list(partition_key), sort=True).size()
    counts: dict[str, int] = {}
    for key, size in sizes.items():
        key = key if isinstance(key, tuple) else (key,)
        counts[format_partition(key)] = int(size)
    return counts


def run_pipeline(
    samples,
    config: PipelineConfig | None = None,
    *,
    strict: bool = False,
    show_progress: bool = True,
) -> tuple[pd.DataFrame, dict]:
    """Run every stage on an in-memory sample collection.

    Args:
        samples: DataFrame, list of dicts or list of Sample records.
        config: Pipeline options, defaults to PipelineConfig().
        strict: Abort on non-monotonic timestamps instead of excluding rows.
        show_progress: Show tqdm progress bars.

    Returns:
        (output_df, report)
        - output_df: Cleaned rows with exactly OUTPUT_COLUMNS, fresh index.
        - report: Diagnostics dict (JSON serializable).

    Raises:
        SchemaError: If the input violates the sample contract.
        NonMonotonicTimeError: Only in strict mode.
    """
    config = config or PipelineConfig()

    samples_df = validate_samples(samples)
    print(f"[INFO] Validated {len(samples_df)} samples.")

    out_of_order = {format_group_key(key): n for key, n in count_out_of_order(samples_df).items()}
    for label, n_late in out_of_order.items():
        print(f"[WARN] {label}: {n_late} samples out of time order, reordered by timestamp.")

    groups = partition_groups(samples_df)
    derived_df, diff_qc = differentiate_all(
        groups,
        config.gap_threshold,
        strict=strict,
        show_progress=show_progress,
    )

    survivors_df, filter_records = run_filter_chain(
        derived_df,
        iqr_multiplier=config.iqr_multiplier,
        partition_key=config.coarse_filter_key,
    )

    labeled_df = add_session_group_labels(survivors_df, config.session_bin_width)
    output_df = labeled_df.loc[:, OUTPUT_COLUMNS].reset_index(drop=True)

    report = {
        "config": config.to_dict(),
        "n_input_rows": int(len(samples_df)),
        "n_groups": len(groups),
        "n_out_of_order": sum(out_of_order.values()),
        "out_of_order_per_group": out_of_order,
        "differentiation": diff_qc,
        "n_derived_rows": int(len(derived_df)),
        "filter_passes": filter_records,
        "n_output_rows": int(len(output_df)),
        "output_rows_by_partition": count_by_partition(output_df, config.coarse_filter_key),
    }
    print(f"[INFO] Pipeline finished: {report['n_input_rows']} samples -> {report['n_output_rows']} rows.")
    return output_df, report


def plot_filter_qc(report: dict, output_path: Path) -> Path | None:
    """Plot kept vs removed rows per partition for every filter pass.

    Args:
        report: Diagnostics dict from run_pipeline().
        output_path: Image destination.

    Returns:
        The path written, or None when no pass has partition data.

    Outputs:
        Saves the figure to output_path.
    """
    rows: list[dict] = []
    for record in report.get("filter_passes", []):
        for part in record["partitions"]:
            rows.append({"pass": record["variable"], "partition": part["partition"],
                         "status": "kept", "rows": part["n_rows"] - part["n_removed"]})
            rows.append({"pass": record["variable"], "partition": part["partition"],
                         "status": "removed", "rows": part["n_removed"]})

    if not rows:
        print("[WARN] No filter partitions to plot. Skipping QC plot.")
        return None

    qc_df = pd.DataFrame(rows)
    pass_names = list(dict.fromkeys(qc_df["pass"]))
    status_palette = {"kept": "#4CAF50", "removed": "#C62828"}

    fig, axes = plt.subplots(1, len(pass_names), figsize=(6 * len(pass_names), 5), squeeze=False)
    for ax, pass_name in zip(axes[0], pass_names):
        sns.barplot(
            data=qc_df[qc_df["pass"] == pass_name],
            x="partition",
            y="rows",
            hue="status",
            palette=status_palette,
            ax=ax,
        )
        ax.set_title(pass_name, fontsize=12, fontweight="bold")
        ax.set_xlabel("Condition | Health status", fontsize=10)
        ax.set_ylabel("Rows", fontsize=10)
        ax.tick_params(axis="x", labelrotation=20)

    plt.tight_layout()

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=QC_PLOT_DPI, bbox_inches="tight")
    plt.close(fig)
    print(f"[INFO] Saved {output_path}")
    return output_path


def save_outputs(
    output_df: pd.DataFrame,
    report: dict,
    fpg: FilePathGen,
    *,
    qc_plot: bool = False,
) -> dict[str, str]:
    """Write the cleaned table, diagnostics, config snapshot and QC plot.

    Returns:
        Dict of {artifact_name: path} for everything written.
    """
    fpg.ensure_output_dir()
    written: dict[str, str] = {}

    csv_path = write_output_csv(output_df, fpg.cleaned_table_path())
    written["cleaned_table"] = str(csv_path)
    print(f"[INFO] Saved {csv_path}")

    diagnostics_path = fpg.diagnostics_path()
    diagnostics_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
    written["diagnostics"] = str(diagnostics_path)
    print(f"[INFO] Saved {diagnostics_path}")

    config_path = fpg.config_snapshot_path()
    config_path.write_text(json.dumps(report["config"], indent=2), encoding="utf-8")
    written["config"] = str(config_path)

    if qc_plot:
        plot_path = plot_filter_qc(report, fpg.qc_plot_path())
        if plot_path is not None:
            written["qc_plot"] = str(plot_path)

    return written
