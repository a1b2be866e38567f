"""
Tests for the command-line actions (walkthrough and IBGE fetch).

**Purpose**: Run the scripts' main() end to end on offline inputs and check
exit codes and the files they leave behind.

**Testing philosophy**: The walkthrough runs on a synthetic sample; the fetch
script gets a fake provider patched in, so no test touches the network.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest
from scipy import stats

# Add project root to path so we can import actions module
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from actions import fetch_pnadc_microdata, run_pnadc_walkthrough
from pnadc_survey.config.settings import reset_settings
from pnadc_survey.ibge.client import IbgeNotFoundError


TABLE_OUTPUTS = [
    "pnadc_age_summary.csv",
    "pnadc_race_weighted_vs_unweighted.csv",
    "pnadc_race_by_literacy.csv",
    "pnadc_estimates.csv",
]

CHART_OUTPUTS = [
    "pnadc_race_literacy_stacked.png",
    "pnadc_race_literacy_fill.png",
    "pnadc_schooling_vs_income.png",
    "pnadc_hours_histogram.png",
]


@pytest.fixture(autouse=True)
def default_settings(monkeypatch, tmp_path):
    """Settings from a known environment, rebuilt for every test."""
    for name in ["PNADC_BASE_URL", "PNADC_TIMEOUT_SECONDS", "PNADC_LONELY_PSU", "PNADC_CONFIDENCE_LEVEL"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PNADC_DATA_DIR", str(tmp_path / "raw"))
    monkeypatch.setenv("PNADC_RESULTS_DIR", str(tmp_path / "results"))
    reset_settings()
    yield
    reset_settings()


def run_main(main, argv):
    with pytest.raises(SystemExit) as exit_info:
        main(argv)
    return exit_info.value.code


# ============================================================================
# run_pnadc_walkthrough
# ============================================================================

def test_walkthrough_synthetic_writes_tables_and_charts(tmp_path, capsys):
    output_dir = tmp_path / "out"

    code = run_main(run_pnadc_walkthrough.main, ["--source", "synthetic", "--seed", "1", "--output-dir", str(output_dir)])

    assert code == 0
    for name in TABLE_OUTPUTS + CHART_OUTPUTS:
        assert (output_dir / name).exists(), name
    assert "Walkthrough complete" in capsys.readouterr().out


def test_walkthrough_estimates_table(tmp_path):
    output_dir = tmp_path / "out"
    run_main(run_pnadc_walkthrough.main, ["--output-dir", str(output_dir), "--no-charts"])

    estimates = pd.read_csv(output_dir / "pnadc_estimates.csv")

    assert list(estimates.columns) == ["description", "statistic", "level", "estimate", "SE", "cv", "lower", "upper"]
    assert {"total", "mean", "quantile", "gini"} == set(estimates["statistic"])
    gini = estimates[estimates["statistic"] == "gini"]["estimate"].iloc[0]
    assert 0.0 < gini < 1.0

    comparison = pd.read_csv(output_dir / "pnadc_race_weighted_vs_unweighted.csv")
    assert list(comparison.columns) == ["V2010", "Prop_unweighted", "Prop_weighted", "difference"]


def test_walkthrough_intervals_use_configured_confidence_level(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("PNADC_CONFIDENCE_LEVEL", "0.9")
    reset_settings()
    output_dir = tmp_path / "out"

    code = run_main(run_pnadc_walkthrough.main, ["--output-dir", str(output_dir), "--no-charts"])

    assert code == 0
    assert "90% CI" in capsys.readouterr().out

    estimates = pd.read_csv(output_dir / "pnadc_estimates.csv")
    normal = estimates[estimates["statistic"] != "quantile"]
    z90 = stats.norm.ppf(0.95)
    assert np.allclose(normal["upper"] - normal["lower"], 2 * z90 * normal["SE"])

    median = estimates[estimates["statistic"] == "quantile"].iloc[0]
    assert median["lower"] <= median["estimate"] <= median["upper"]


def test_walkthrough_no_charts(tmp_path):
    output_dir = tmp_path / "out"

    code = run_main(run_pnadc_walkthrough.main, ["--output-dir", str(output_dir), "--no-charts"])

    assert code == 0
    assert not any((output_dir / name).exists() for name in CHART_OUTPUTS)


def test_walkthrough_default_output_dir_from_settings(tmp_path):
    code = run_main(run_pnadc_walkthrough.main, ["--no-charts"])

    assert code == 0
    assert (tmp_path / "results" / "pnadc_estimates.csv").exists()


def test_walkthrough_offline_missing_files_exits_with_error(tmp_path, capsys):
    code = run_main(run_pnadc_walkthrough.main, [
        "--source", "offline",
        "--microdata", str(tmp_path / "missing.txt"),
        "--layout", str(tmp_path / "missing_layout.txt"),
        "--output-dir", str(tmp_path / "out"),
    ])

    assert code == 2
    assert "FileNotFoundError" in capsys.readouterr().err


def test_walkthrough_invalid_lonely_psu_setting(tmp_path, monkeypatch):
    monkeypatch.setenv("PNADC_LONELY_PSU", "whatever")
    reset_settings()

    assert run_main(run_pnadc_walkthrough.main, ["--output-dir", str(tmp_path / "out")]) == 2


# ============================================================================
# fetch_pnadc_microdata
# ============================================================================

class FakeProvider:
    """Stands in for IbgeDataProvider inside the fetch script."""

    files = SimpleNamespace(
        microdata=Path("raw/PNADC_032024.txt"),
        layout=Path("raw/input_PNADC_trimestral.txt"),
        dictionary=Path("raw/dicionario_PNADC_microdados_trimestral.xls"),
    )
    error = None
    calls = []

    def __init__(self, settings, data_dir):
        self.data_dir = data_dir

    def download_quarter(self, year, quarter, force=False):
        FakeProvider.calls.append((year, quarter, force, self.data_dir))
        if FakeProvider.error is not None:
            raise FakeProvider.error
        return FakeProvider.files

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


@pytest.fixture
def fake_provider():
    FakeProvider.error = None
    FakeProvider.calls = []
    with patch.object(fetch_pnadc_microdata, "IbgeDataProvider", FakeProvider):
        yield FakeProvider


def test_fetch_action_success(fake_provider, tmp_path, capsys):
    code = run_main(fetch_pnadc_microdata.main, [
        "--year", "2024", "--quarter", "3", "--output-dir", str(tmp_path / "raw"), "--force",
    ])

    assert code == 0
    assert fake_provider.calls == [(2024, 3, True, tmp_path / "raw")]
    out = capsys.readouterr().out
    assert "✓ Microdata:" in out
    assert "PNADC_032024.txt" in out


def test_fetch_action_not_published(fake_provider):
    fake_provider.error = IbgeNotFoundError("No PNADC archive published for 2024 Q4")

    assert run_main(fetch_pnadc_microdata.main, ["--year", "2024", "--quarter", "4"]) == 2


def test_fetch_action_invalid_year_is_configuration_error(fake_provider):
    fake_provider.error = ValueError("year must be an integer >= 2012, got: 2011")

    assert run_main(fetch_pnadc_microdata.main, ["--year", "2011", "--quarter", "1"]) == 1


def test_fetch_action_rejects_invalid_quarter_argument():
    with pytest.raises(SystemExit) as exit_info:
        fetch_pnadc_microdata.parse_args(["--year", "2024", "--quarter", "5"])
    assert exit_info.value.code == 2
