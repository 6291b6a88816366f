"""End-to-end tests for the birdnet-process command line."""

import pandas as pd
import pytest

from birdnet_process.cli import build_parser, load_config, main

RESULTS_CSV = (
    "Start (s),End (s),Scientific name,Common name,Confidence\n"
    "0.0,3.0,Psophodes olivaceus,Eastern Whipbird,0.91\n"
    "1800.0,1803.0,Psophodes olivaceus,Eastern Whipbird,0.85\n"
    "7200.0,7203.0,Gymnorhina tibicen,Australian Magpie,0.66\n"
    "7300.0,7303.0,Gymnorhina tibicen,Australian Magpie,0.12\n"
)


@pytest.fixture
def sites(tmp_path):
    """Two site folders with one results file each."""
    folders = []
    for name in ("SiteA", "SiteB"):
        folder = tmp_path / name
        folder.mkdir()
        (folder / f"{name}_20241105_050000.BirdNET.results.csv").write_text(RESULTS_CSV)
        folders.append(folder)
    return folders


class TestLoadConfig:
    """Command-line options override the configuration."""

    def test_overrides(self, tmp_path):
        config_path = tmp_path / "birdnet.yaml"
        config_path.write_text("unit: day\nconfidence_threshold: 0.3\n")
        args = build_parser().parse_args(
            ["--config", str(config_path), "activity", "x", "--confidence", "0.6"])

        config = load_config(args)
        assert config.unit == "day"
        assert config.confidence_threshold == 0.6


class TestCommands:
    """Tests for the subcommands."""

    def test_summary(self, sites, capsys):
        assert main(["summary", str(sites[0])]) == 0
        out = capsys.readouterr().out
        assert "Number of species" in out
        assert "Eastern Whipbird" in out

    def test_activity_single_site(self, sites, tmp_path):
        output = tmp_path / "out" / "activity.csv"
        assert main(["activity", str(sites[0]), "--output", str(output)]) == 0

        df = pd.read_csv(output)
        assert list(df.columns) == ["time_bin", "species", "n"]
        # 05:00 to 07:00, two species
        assert len(df) == 6
        assert df["n"].sum() == 3

    def test_activity_faceted_with_plot(self, sites, tmp_path):
        output = tmp_path / "activity.csv"
        plot = tmp_path / "activity.png"
        code = main(["activity", str(sites[0]), str(sites[1]), "--species", "Eastern Whipbird",
                     "--unit", "30 min", "--output", str(output), "--plot", str(plot)])

        assert code == 0
        df = pd.read_csv(output)
        assert set(df["Site"]) == {"SiteA", "SiteB"}
        assert df["n"].sum() == 4
        assert plot.exists()

    def test_activity_site_clock(self, sites, tmp_path):
        """Bins read in the recorder's own time zone."""
        output = tmp_path / "activity.csv"
        assert main(["activity", str(sites[0]), "--tz", "Australia/Brisbane", "--output", str(output)]) == 0

        df = pd.read_csv(output)
        assert df["time_bin"].iloc[0] == "2024-11-05 05:00:00+10:00"

    def test_activity_nothing_passes(self, sites, tmp_path):
        assert main(["activity", str(sites[0]), "--confidence", "0.99",
                     "--output", str(tmp_path / "a.csv")]) == 1

    def test_counts(self, sites, tmp_path):
        output = tmp_path / "counts.png"
        assert main(["counts", str(sites[0]), "--output", str(output)]) == 0
        assert output.exists()

    def test_counts_single_species_reports_error(self, sites, tmp_path):
        assert main(["counts", str(sites[0]), "--confidence", "0.8",
                     "--output", str(tmp_path / "c.png")]) == 2

    def test_init_config(self, tmp_path):
        path = tmp_path / "birdnet.yaml"
        assert main(["init-config", str(path)]) == 0
        assert "confidence_threshold: 0.5" in path.read_text()

    def test_empty_folder(self, tmp_path):
        assert main(["summary", str(tmp_path)]) == 1


class TestVersion:
    """Tests for the version flag."""

    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == "birdnet_process 0.1.0"

    def test_info_exported(self):
        import birdnet_process

        assert "info" in birdnet_process.__all__
        assert birdnet_process.info() == f"birdnet_process {birdnet_process.__version__}"
