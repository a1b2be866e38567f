"""
Tests for the table manipulation verbs (order_by, project, filter_rows,
derive, aggregate).

These are unweighted operations, so expected values can be checked by hand.
"""

import numpy as np
import pandas as pd
import pytest

from pnadc_survey.analytics.transforms import (
    aggregate,
    derive,
    filter_rows,
    order_by,
    project,
    ratio,
    row_mask,
)


def make_people() -> pd.DataFrame:
    """Six people in two states, one with unknown age."""
    return pd.DataFrame({
        "UF": ["RS", "SC", "RS", "SP", "RS", "SC"],
        "V2009": [30.0, 17.0, np.nan, 65.0, 45.0, 8.0],
        "V2010": pd.Categorical(
            ["Branca", "Parda", "Branca", "Preta", None, "Parda"],
            categories=["Branca", "Preta", "Parda"],
        ),
        "VD4019": [3000.0, 0.0, 1500.0, 2000.0, np.nan, 0.0],
        "V2001": [3.0, 2.0, 0.0, 4.0, 2.0, 1.0],
    })


# ============================================================================
# order_by
# ============================================================================

def test_order_by_is_stable_ascending_and_descending():
    table = pd.DataFrame({"id": [0, 1, 2, 3], "key": [2, 1, 2, 1]})

    assert order_by(table, "key")["id"].tolist() == [1, 3, 0, 2]
    assert order_by(table, "key", descending=True)["id"].tolist() == [0, 2, 1, 3]


def test_order_by_multiple_keys_and_missing_last():
    table = make_people()

    ordered = order_by(table, ["UF", "V2009"], descending=[False, True])

    assert ordered["UF"].tolist() == ["RS", "RS", "RS", "SC", "SC", "SP"]
    assert ordered["V2009"].iloc[:2].tolist() == [45.0, 30.0]
    assert np.isnan(ordered["V2009"].iloc[2])
    assert list(ordered.index) == list(range(6))


def test_order_by_does_not_mutate_input():
    table = make_people()
    before = table.copy()

    order_by(table, "V2009")

    pd.testing.assert_frame_equal(table, before)


# ============================================================================
# project / filter_rows / row_mask
# ============================================================================

def test_project_keeps_requested_order():
    projected = project(make_people(), ["V2009", "UF"])
    assert list(projected.columns) == ["V2009", "UF"]


def test_project_unknown_column():
    with pytest.raises(KeyError, match="V9999"):
        project(make_people(), ["UF", "V9999"])


def test_filter_rows_by_membership_and_predicate():
    table = make_people()

    south = filter_rows(table, UF=["RS", "SC"])
    assert len(south) == 5
    assert "SP" not in south["UF"].tolist()

    adults = filter_rows(table, lambda t: t["V2009"] >= 18)
    # Unknown age is not "adult"
    assert adults["V2009"].tolist() == [30.0, 65.0, 45.0]

    same = filter_rows(table, "V2009 >= 18")
    pd.testing.assert_frame_equal(same, adults)


def test_filter_rows_membership_preserves_original_order():
    table = pd.DataFrame({"region": ["Z", "Y", "X", "Z", "X"], "id": [0, 1, 2, 3, 4]})

    result = filter_rows(table, region={"X", "Y"})

    assert result["region"].tolist() == ["Y", "X", "X"]
    assert result["id"].tolist() == [1, 2, 4]


def test_filter_rows_combines_predicate_and_conditions():
    table = make_people()

    result = filter_rows(table, "V2009 >= 18", UF="RS")

    assert result["V2009"].tolist() == [30.0, 45.0]
    assert list(result.index) == [0, 1]


def test_filter_rows_on_categorical_with_missing():
    table = make_people()

    result = filter_rows(table, V2010="Branca")

    assert len(result) == 2


def test_row_mask_unknown_column():
    with pytest.raises(KeyError, match="Unknown column"):
        row_mask(make_people(), V9999=1)


def test_row_mask_scalar_predicate_result_is_broadcast():
    mask = row_mask(make_people(), lambda t: True)
    assert mask.all()


# ============================================================================
# derive
# ============================================================================

def test_derive_ratio_division_by_zero_is_nan():
    table = make_people()

    result = derive(table, "per_capita", ratio("VD4019", "V2001"))

    assert result["per_capita"].iloc[0] == 1000.0
    # 1500 / 0 and NaN / 2
    assert np.isnan(result["per_capita"].iloc[2])
    assert np.isnan(result["per_capita"].iloc[4])
    assert not np.isinf(result["per_capita"]).any()
    assert "per_capita" not in table.columns


def test_derive_expression_string_replaces_infinities():
    result = derive(make_people(), "per_capita", "VD4019 / V2001")

    assert np.isnan(result["per_capita"].iloc[2])
    assert result["per_capita"].iloc[3] == 500.0


def test_derive_boolean_column():
    result = derive(make_people(), "adult", lambda t: t["V2009"] >= 18)
    assert result["adult"].tolist() == [True, False, False, True, True, False]


# ============================================================================
# aggregate
# ============================================================================

def test_aggregate_counts_and_proportions():
    result = aggregate(make_people(), by="UF", proportions=True)

    assert result["UF"].tolist() == ["RS", "SC", "SP"]
    assert result["Freq"].tolist() == [3, 2, 1]
    assert np.isclose(result["Prop"].sum(), 1.0)
    assert np.isclose(result["Prop"].iloc[0], 0.5)


def test_aggregate_keeps_missing_group():
    result = aggregate(make_people(), by="V2010")

    assert result["Freq"].sum() == 6
    assert result["V2010"].isna().sum() == 1
    assert result.loc[result["V2010"].isna(), "Freq"].iloc[0] == 1


def test_aggregate_reductions_skip_missing_values():
    result = aggregate(
        make_people(),
        by="UF",
        reductions={"idade_media": ("V2009", "mean"), "n_idade": ("V2009", "count")},
    )
    rs = result[result["UF"] == "RS"].iloc[0]

    assert rs["idade_media"] == 37.5
    assert rs["n_idade"] == 2
    assert rs["Freq"] == 3


def test_aggregate_without_groups_returns_single_row():
    result = aggregate(
        make_people(),
        reductions={"mean_age": ("V2009", "mean"), "max_age": ("V2009", "max")},
    )

    assert len(result) == 1
    assert np.isclose(result["mean_age"].iloc[0], 33.0)
    assert result["max_age"].iloc[0] == 65.0


def test_aggregate_errors():
    table = make_people()

    with pytest.raises(ValueError, match="Unknown reduction"):
        aggregate(table, by="UF", reductions={"x": ("V2009", "mode")})
    with pytest.raises(KeyError):
        aggregate(table, by="V9999")
    with pytest.raises(KeyError):
        aggregate(table, reductions={"x": ("V9999", "mean")})
    with pytest.raises(ValueError, match="requires at least one grouping"):
        aggregate(table, proportions=True)
