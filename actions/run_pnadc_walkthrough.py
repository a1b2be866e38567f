#!/usr/bin/env python3
"""
Run the PNAD Contínua walkthrough end to end and save its tables and charts.

**Purpose**: This script demonstrates how every piece of the package fits
together on one quarter of the PNADC:
  1. Basic arithmetic (a warm-up).
  2. Loading the microdata (online from IBGE, offline from local files, or a
     synthetic sample that needs no network).
  3. Table manipulation: sort, select, filter, derive, summarise.
  4. Why sampling weights matter: unweighted vs weighted proportions.
  5. Complex-sample estimation: tables, totals, means, domains, quantiles.
  6. Income inequality: the Gini coefficient.
  7. Charts.

**Usage**:
    From project root:
    ```bash
    python actions/run_pnadc_walkthrough.py --source synthetic
    python actions/run_pnadc_walkthrough.py --source online --year 2024 --quarter 3
    python actions/run_pnadc_walkthrough.py --source offline \\
        --microdata data/raw/PNADC_032024.txt \\
        --layout data/raw/input_PNADC_trimestral.txt \\
        --dictionary data/raw/dicionario_PNADC_microdados_trimestral.xls
    ```

**Outputs** (saved to data/results/ or PNADC_RESULTS_DIR):
  - pnadc_age_summary.csv: mean/min/max age.
  - pnadc_race_weighted_vs_unweighted.csv: proportions with and without weights.
  - pnadc_race_by_literacy.csv: weighted cross-tab with standard errors.
  - pnadc_estimates.csv: totals, means, median and Gini with SE and CV.
  - pnadc_race_literacy_stacked.png, pnadc_race_literacy_fill.png,
    pnadc_schooling_vs_income.png, pnadc_hours_histogram.png.

**Teaching note**: Sections 3-4 work on the plain table and describe the
*sample*; sections 5-6 work on the design and describe the *population*.
Compare the two proportion columns written in section 4 to see the difference.
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend

from pnadc_survey.config.settings import get_settings
from pnadc_survey.data.loaders import fetch_pnadc, load_pnadc_offline
from pnadc_survey.survey.design import pnadc_design, prepare_for_inequality
from pnadc_survey.survey.errors import SurveyEstimationError
from pnadc_survey.analytics.synthetic_data import generate_synthetic_pnadc_sample
from pnadc_survey.analytics.transforms import (
    aggregate,
    derive,
    filter_rows,
    order_by,
    project,
    ratio,
)
from pnadc_survey.analytics.estimators import (
    compare_weighted_unweighted,
    survey_mean,
    survey_quantile,
    survey_table,
    survey_total,
    weighted_frequency,
)
from pnadc_survey.analytics.inequality import survey_gini
from pnadc_survey.reporting.charts import (
    bar_chart,
    histogram_chart,
    save_figure,
    scatter_chart,
)


# Variables used by the walkthrough (design columns are always read too)
WALKTHROUGH_COLUMNS = [
    "Ano", "Trimestre", "UF", "V2001", "V2007", "V2009", "V2010", "V3001",
    "VD3005", "VD4002", "VD4016", "VD4019", "VD4020", "VD4035",
]

SOUTH_STATES = ["Rio Grande do Sul", "Santa Catarina", "Paraná"]


def parse_args(argv=None):
    """
    Parse command line arguments.

    Returns:
        Namespace with attributes: source, year, quarter, microdata, layout,
        dictionary, seed, output_dir, no_charts
    """
    parser = argparse.ArgumentParser(
        description="PNAD Contínua walkthrough: loading, manipulation, weights, estimation, Gini, charts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--source",
        choices=["online", "offline", "synthetic"],
        default="synthetic",
        help="Where the microdata comes from (default: synthetic)",
    )
    parser.add_argument("--year", type=int, default=2024, help="Reference year for --source online")
    parser.add_argument("--quarter", type=int, default=3, help="Reference quarter for --source online")
    parser.add_argument("--microdata", type=str, default=None, help="Fixed-width file for --source offline")
    parser.add_argument("--layout", type=str, default=None, help="SAS input layout for --source offline")
    parser.add_argument("--dictionary", type=str, default=None, help="Variable dictionary for --source offline")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for --source synthetic")
    parser.add_argument("--output-dir", type=str, default=None, help="Results folder (default: PNADC_RESULTS_DIR)")
    parser.add_argument("--no-charts", action="store_true", help="Skip section 7")
    return parser.parse_args(argv)


def print_section(title: str) -> None:
    print("=" * 80)
    print(title)
    print("=" * 80)


def section_basics() -> None:
    """Section 1: arithmetic warm-up."""
    print_section("Section 1: Basic operations")
    print(f"  1 + 1          = {1 + 1}")
    print(f"  18327 - 7981   = {18327 - 7981}")
    print(f"  24 / 7         = {24 / 7:.4f}")
    print(f"  5 * 78         = {5 * 78}")
    print(f"  14 ** 2        = {14 ** 2}")
    soma = 234 + 458
    print(f"  soma = 234 + 458 -> {soma}")
    del soma
    print()


def section_load(args, settings) -> pd.DataFrame:
    """Section 2: load the labelled table from the chosen source."""
    print_section(f"Section 2: Loading PNADC microdata ({args.source})")

    if args.source == "online":
        print(f"  Fetching {args.year} Q{args.quarter} from {settings.ibge.base_url}")
        df = fetch_pnadc(
            args.year,
            args.quarter,
            columns=WALKTHROUGH_COLUMNS,
            design=False,
            settings=settings,
        )
    elif args.source == "offline":
        data_dir = settings.analysis.data_dir
        microdata = Path(args.microdata) if args.microdata else data_dir / f"PNADC_0{args.quarter}{args.year}.txt"
        layout = Path(args.layout) if args.layout else data_dir / "input_PNADC_trimestral.txt"
        dictionary = Path(args.dictionary) if args.dictionary else data_dir / "dicionario_PNADC_microdados_trimestral.xls"
        print(f"  Reading {microdata}")
        df = load_pnadc_offline(
            microdata,
            layout,
            dictionary if dictionary.exists() else None,
            columns=WALKTHROUGH_COLUMNS,
            design=False,
        )
        if not dictionary.exists():
            print(f"  ⚠ Dictionary not found at {dictionary}, variables left unlabelled")
    else:
        df = generate_synthetic_pnadc_sample(seed=args.seed)

    print(f"  ✓ Loaded {len(df):,} records, {df.shape[1]} columns")
    print()
    return df


def section_manipulation(df: pd.DataFrame, results_dir: Path) -> None:
    """Section 3: sort, select, filter, derive, summarise."""
    print_section("Section 3: Data manipulation")

    ascending = order_by(df, "V2007")
    descending = order_by(df, "V2007", descending=True)
    print(f"  ✓ Sorted by V2007: first '{ascending['V2007'].iloc[0]}', "
          f"first descending '{descending['V2007'].iloc[0]}'")

    wanted = ["Ano", "UF", "V2007", "V2010", "V3001", "VD4002", "VD4016"]
    selected = project(df, [c for c in wanted if c in df.columns])
    print(f"  ✓ Selected columns: {list(selected.columns)}")

    rs = filter_rows(df, UF="Rio Grande do Sul")
    south = filter_rows(df, UF=SOUTH_STATES)
    print(f"  ✓ Rio Grande do Sul: {len(rs):,} records; South region: {len(south):,} records")

    per_capita = derive(df, "valor_per_capita", ratio("VD4019", "V2001"))
    print(f"  ✓ valor_per_capita defined for {per_capita['valor_per_capita'].notna().sum():,} records")

    summary = aggregate(df, reductions={
        "media": ("V2009", "mean"),
        "minimo": ("V2009", "min"),
        "maximo": ("V2009", "max"),
    })
    print(f"  Age (V2009): mean {summary['media'].iloc[0]:.2f}, "
          f"min {summary['minimo'].iloc[0]:.0f}, max {summary['maximo'].iloc[0]:.0f}")

    path = results_dir / "pnadc_age_summary.csv"
    summary.to_csv(path, index=False)
    print(f"  ✓ Saved: {path}")
    print()


def section_weights(df: pd.DataFrame, design, results_dir: Path) -> None:
    """Section 4: unweighted vs weighted proportions of V2010."""
    print_section("Section 4: Why sampling weights matter")

    comparison = compare_weighted_unweighted(df, design, "V2010")
    print(comparison.to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    path = results_dir / "pnadc_race_weighted_vs_unweighted.csv"
    comparison.to_csv(path, index=False)
    print(f"  ✓ Saved: {path}")
    print()


def _estimate_rows(estimate, label: str, level: float) -> pd.DataFrame:
    frame = estimate.to_frame().rename(columns={estimate.statistic: "estimate"})
    frame["cv"] = estimate.cv()
    frame = frame.join(estimate.confint(level))
    frame.insert(0, "level", [str(i) for i in frame.index])
    frame.insert(0, "statistic", estimate.statistic)
    frame.insert(0, "description", label)
    return frame.reset_index(drop=True)


def section_estimation(design, results_dir: Path, level: float) -> list[pd.DataFrame]:
    """Section 5: complex-sample estimation (intervals at the configured level)."""
    print_section("Section 5: Complex-sample estimation")
    print(f"  {design}")
    print(f"  Confidence level: {level:.0%}")
    rows = []

    table = weighted_frequency(design, "V2010")
    print("  Weighted frequency of V2010:")
    print(table.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))

    total = survey_total(design, "V2010")
    mean = survey_mean(design, "V2010")
    rows.append(_estimate_rows(total, "V2010 total", level))
    rows.append(_estimate_rows(mean, "V2010 proportion", level))
    print("  Proportions of V2010 (with SE):")
    print(mean.to_frame().to_string(float_format=lambda v: f"{v:.4f}"))

    crosstab = survey_table(design, "V2010", "V3001")
    path = results_dir / "pnadc_race_by_literacy.csv"
    crosstab.to_csv(path, index=False)
    print(f"  ✓ Saved V2010 x V3001 table: {path}")

    try:
        rs_total = survey_total(design.subset(UF="Rio Grande do Sul"), "V2010")
        rows.append(_estimate_rows(rs_total, "V2010 total, Rio Grande do Sul", level))
        print(f"  ✓ Rio Grande do Sul population: {rs_total.values.sum():,.0f}")
    except SurveyEstimationError as e:
        print(f"  ⚠ Rio Grande do Sul subset skipped: {e}")

    income_mean = survey_mean(design, "VD4016", na_rm=True)
    income_total = survey_total(design, "VD4016", na_rm=True)
    income_median = survey_quantile(design, "VD4016", quantiles=0.5, na_rm=True, level=level)
    rows.append(_estimate_rows(income_mean, "VD4016 mean", level))
    rows.append(_estimate_rows(income_total, "VD4016 total", level))
    rows.append(_estimate_rows(income_median, "VD4016 median", level))
    print(f"  VD4016 mean:   {income_mean.value:,.2f} (SE {income_mean.std_error:,.2f})")
    print(f"  VD4016 total:  {income_total.value:,.0f} (SE {income_total.std_error:,.0f})")
    median_ci = income_median.confint(level)
    print(f"  VD4016 median: {income_median.value:,.2f} (SE {income_median.std_error:,.2f}, "
          f"{level:.0%} CI {median_ci['lower'].iloc[0]:,.2f} to {median_ci['upper'].iloc[0]:,.2f})")
    print()
    return rows


def section_gini(design, level: float) -> list[pd.DataFrame]:
    """Section 6: Gini coefficient of effective income."""
    print_section("Section 6: Income inequality (Gini)")
    prepared = prepare_for_inequality(design)
    gini = survey_gini(prepared, "VD4020", na_rm=True)
    print(f"  Gini (VD4020): {gini.value:.4f} (SE {gini.std_error:.4f})")
    print()
    return [_estimate_rows(gini, "VD4020 Gini", level)]


def section_charts(df: pd.DataFrame, design, results_dir: Path) -> None:
    """Section 7: charts."""
    print_section("Section 7: Charts")

    tab1 = survey_table(design, "V2010", "V3001")
    tab1["Prop"] = tab1["Freq"] / tab1["Freq"].sum()

    charts = {
        "pnadc_race_literacy_stacked.png": bar_chart(
            tab1, x="V2010", y="Prop", fill="V3001",
            title="Proporção por Raça/Cor e Alfabetização",
            subtitle="Dados da PNAD Contínua",
            xlabel="Raça/Cor", ylabel="Proporção (%)", legend_title="Sabe Ler?",
        ),
        "pnadc_race_literacy_fill.png": bar_chart(
            tab1, x="V2010", y="Prop", fill="V3001", position="fill",
            title="Distribuição Normalizada de Alfabetização por Raça/Cor",
            xlabel="Raça/Cor", ylabel="Proporção Acumulada (%)", legend_title="Sabe Ler?",
        ),
        "pnadc_schooling_vs_income.png": scatter_chart(
            df, x="VD3005", y="VD4016",
            title="Relação entre Educação e Renda",
            xlabel="Nível Educacional", ylabel="Renda Mensal (R$)",
        ),
        "pnadc_hours_histogram.png": histogram_chart(
            df, "VD4035", binwidth=5,
            title="Distribuição de Horas Trabalhadas por Semana",
            xlabel="Horas Trabalhadas", ylabel="Frequência",
        ),
    }

    for name, fig in charts.items():
        path = save_figure(fig, results_dir / name)
        print(f"  ✓ Saved chart: {path}")
    print()


def main(argv=None):
    """
    Main entrypoint for the walkthrough.

    **Exit codes**:
      - 0: Success
      - 2: Any failure (configuration, network, schema, estimation)
    """
    args = parse_args(argv)

    print("=" * 80)
    print("PNAD Contínua Walkthrough")
    print("=" * 80)
    print()

    try:
        settings = get_settings()
        results_dir = Path(args.output_dir) if args.output_dir else settings.analysis.results_dir
        results_dir.mkdir(parents=True, exist_ok=True)

        section_basics()
        df = section_load(args, settings)
        section_manipulation(df, results_dir)

        design = pnadc_design(df, lonely_psu=settings.analysis.lonely_psu)
        section_weights(df, design, results_dir)

        level = settings.analysis.confidence_level
        rows = section_estimation(design, results_dir, level)
        rows += section_gini(design, level)
        estimates = pd.concat(rows, ignore_index=True)
        estimates_path = results_dir / "pnadc_estimates.csv"
        estimates.to_csv(estimates_path, index=False)
        print(f"  ✓ Saved estimates: {estimates_path}")
        print()

        if args.no_charts:
            print("  ⚠ Charts skipped (--no-charts)")
        else:
            section_charts(df, design, results_dir)

    except KeyboardInterrupt:
        print("\nInterrupted by user. Exiting...")
        sys.exit(130)

    except Exception as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(2)

    print("=" * 80)
    print(f"Walkthrough complete! Results saved to {results_dir}")
    print("=" * 80)
    sys.exit(0)


if __name__ == "__main__":
    main()
