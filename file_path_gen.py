from pathlib import Path


class FilePathGen:
    # Generate the output file paths of one pipeline run.
    def __init__(self, output_dir, run_name: str = "kinematics"):
        self.output_dir = Path(output_dir)
        self.run_name = run_name

    def ensure_output_dir(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir

    def cleaned_table_path(self):
        return self.output_dir / f'{self.run_name}_cleaned.csv'

    def diagnostics_path(self):
        return self.output_dir / f'{self.run_name}_diagnostics.json'

    def config_snapshot_path(self):
        return self.output_dir / f'{self.run_name}_config.json'

    def qc_plot_path(self):
        return self.output_dir / f'{self.run_name}_filter_qc.jpg'
