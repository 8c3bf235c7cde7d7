import argparse
import sys
import warnings

from file_path_gen import FilePathGen
from kinematics_common import (
    DEFAULT_SESSION_BIN_WIDTH,
    NonMonotonicTimeError,
    PipelineConfig,
    SchemaError,
    read_samples_csv,
)
from kinematics_pipeline import run_pipeline, save_outputs
from session_binner import session_bin_label


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Config file values first, explicit command-line flags on top."""
    options = {}
    if args.config:
        options.update(PipelineConfig.from_json(args.config).to_dict())

    overrides = {
        'gap_threshold': args.gap_threshold,
        'iqr_multiplier': args.iqr_multiplier,
        'session_bin_width': args.session_bin_width,
        'coarse_filter_key': args.coarse_filter_key,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    return PipelineConfig.from_dict(options)


def run_kinematics(args: argparse.Namespace) -> int:
    """The full derivation and filtering pipeline on one sample table."""
    print("--- Starting Trajectory Kinematics Pipeline ---")
    try:
        config = build_config(args)
        samples_df = read_samples_csv(args.input_csv)
        output_df, report = run_pipeline(
            samples_df,
            config,
            strict=args.strict,
            show_progress=not args.no_progress,
        )
    except (FileNotFoundError, SchemaError, NonMonotonicTimeError, ValueError) as e:
        print(f"[ERROR] {e}")
        return 1

    fpg = FilePathGen(args.output_dir, run_name=args.run_name)
    save_outputs(output_df, report, fpg, qc_plot=args.qc_plot)
    print("--- Trajectory Kinematics Pipeline Finished ---")
    return 0


def print_session_bin(args: argparse.Namespace) -> int:
    """Print the bin label of one session number."""
    try:
        print(session_bin_label(args.session_number, args.width))
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kinematic derivation and outlier filtering for trajectory samples.")

    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    parser_run = subparsers.add_parser('run', help='Derive kinematics from a sample table and filter outliers.')
    parser_run.add_argument('input_csv', help='CSV with subject_id, session_number, condition, '
                                              'health_status, timestamp, x, y columns.')
    parser_run.add_argument('--output-dir', required=True, help='Directory for the cleaned table and diagnostics.')
    parser_run.add_argument('--run-name', default='kinematics', help='Prefix of the output files (default: kinematics).')
    parser_run.add_argument('--config', default=None, help='JSON file with pipeline options.')
    parser_run.add_argument('--gap-threshold', type=float, default=None,
                            help='Seconds between samples above which a gap is flagged (default: 1.0).')
    parser_run.add_argument('--iqr-multiplier', type=float, default=None,
                            help='Outlier fence width in IQR units (default: 1.5).')
    parser_run.add_argument('--session-bin-width', type=int, default=None,
                            help='Sessions per bin label (default: 10).')
    parser_run.add_argument('--coarse-filter-key', nargs='+', default=None,
                            help='Columns pooling the outlier quartiles (default: condition health_status).')
    parser_run.add_argument('--strict', action='store_true',
                            help='Abort on duplicate or decreasing timestamps instead of excluding the row.')
    parser_run.add_argument('--qc-plot', action='store_true', help='Also save a per-pass filter QC plot.')
    parser_run.add_argument('--no-progress', action='store_true', help='Hide progress bars.')
    parser_run.set_defaults(func=run_kinematics)

    parser_bin = subparsers.add_parser('bin', help='Print the session bin label of a session number.')
    parser_bin.add_argument('session_number', type=int)
    parser_bin.add_argument('--width', type=int, default=DEFAULT_SESSION_BIN_WIDTH,
                            help=f'Sessions per bin (default: {DEFAULT_SESSION_BIN_WIDTH}).')
    parser_bin.set_defaults(func=print_session_bin)

    return parser


def main(argv=None) -> int:
    warnings.filterwarnings("ignore", category=FutureWarning, module="seaborn")

    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
