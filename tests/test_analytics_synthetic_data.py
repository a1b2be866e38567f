"""
Tests for synthetic PNADC sample generation.

These tests ensure that generate_synthetic_pnadc_sample:
  - Produces the expected shape and columns.
  - Respects the design structure (strata, nested PSUs, weights).
  - Follows the survey's skip rules for missing values.
  - Is deterministic when a seed is provided.
"""

import numpy as np
import pandas as pd

from pnadc_survey.analytics.synthetic_data import (
    RACE_LABELS,
    UF_NAMES,
    generate_synthetic_pnadc_sample,
)


EXPECTED_COLUMNS = [
    "Ano", "Trimestre", "UF", "Estrato", "UPA", "V1027", "V1028", "V1029",
    "posest", "V2001", "V2007", "V2009", "V2010", "V3001", "VD3005",
    "VD4002", "VD4016", "VD4019", "VD4020", "VD4035",
]


def test_generate_synthetic_pnadc_sample_shape_and_columns():
    df = generate_synthetic_pnadc_sample(n_strata=3, psus_per_stratum=2, persons_per_psu=10, seed=1)

    assert len(df) == 3 * 2 * 10
    assert list(df.columns) == EXPECTED_COLUMNS
    assert df["Estrato"].nunique() == 3
    assert df["UPA"].nunique() == 6
    assert (df.groupby("Estrato")["UPA"].nunique() == 2).all()


def test_generate_synthetic_pnadc_sample_labelled_categoricals():
    df = generate_synthetic_pnadc_sample(seed=2)

    assert isinstance(df["UF"].dtype, pd.CategoricalDtype)
    assert list(df["UF"].cat.categories) == UF_NAMES
    assert list(df["V2010"].cat.categories) == RACE_LABELS
    assert df["V2010"].notna().all()
    assert (df["Ano"] == "2024").all()
    assert (df["Trimestre"] == "3").all()


def test_generate_synthetic_pnadc_sample_weights_are_consistent():
    df = generate_synthetic_pnadc_sample(seed=3)

    assert (df["V1027"] > 0).all()
    assert (df["V1028"] > 0).all()

    # V1028 is the base weight post-stratified to V1029
    by_group = df.groupby("posest").agg(
        weight=("V1028", "sum"),
        population=("V1029", "first"),
        distinct=("V1029", "nunique"),
    )
    assert (by_group["distinct"] == 1).all()
    assert np.allclose(by_group["weight"], by_group["population"])


def test_generate_synthetic_pnadc_sample_skip_rules():
    df = generate_synthetic_pnadc_sample(seed=4)

    young = df["V2009"] < 5
    assert df.loc[young, "V3001"].isna().all()
    assert df.loc[young, "VD3005"].isna().all()
    assert df.loc[~young, "V3001"].notna().all()

    children = df["V2009"] < 14
    assert df.loc[children, "VD4002"].isna().all()

    employed = df["VD4002"] == "Pessoas ocupadas"
    for col in ["VD4016", "VD4019", "VD4020", "VD4035"]:
        assert df.loc[employed, col].notna().all()
        assert df.loc[~employed, col].isna().all()

    assert (df.loc[employed, "VD4019"] >= df.loc[employed, "VD4016"]).all()


def test_generate_synthetic_pnadc_sample_is_deterministic():
    first = generate_synthetic_pnadc_sample(seed=42)
    second = generate_synthetic_pnadc_sample(seed=42)
    other = generate_synthetic_pnadc_sample(seed=43)

    pd.testing.assert_frame_equal(first, second)
    assert not first["V1027"].equals(other["V1027"])


def test_generate_synthetic_pnadc_sample_empty():
    df = generate_synthetic_pnadc_sample(persons_per_psu=0, seed=5)

    assert df.empty
    assert list(df.columns) == EXPECTED_COLUMNS
