"""
Table manipulation verbs: sort, select, filter, derive and summarise.

**Conceptual**: Before estimating anything you usually reshape the microdata:
keep a few columns, restrict to adults, compute income per household member,
count people by race. These five verbs cover that vocabulary:
  - order_by: stable sort by one or more columns.
  - project: keep named columns.
  - filter_rows: keep rows satisfying a condition.
  - derive: add a computed column.
  - aggregate: group and summarise, optionally with proportions.

**Design principles**:
  - Pure functions: every verb returns a new DataFrame; inputs are never mutated.
  - Missing values are never silently treated as zero or as "true".
  - Row order is meaningful and preserved wherever the verb allows it.

**Teaching note**: These are *unweighted* operations. Counting rows tells you
about the sample, not about the population. Compare aggregate(..., proportions=True)
with estimators.weighted_frequency to see how much the weights matter.
"""

from typing import Callable, Union

import numpy as np
import pandas as pd

from pnadc_survey.utils.math import safe_ratio


Predicate = Union[Callable[[pd.DataFrame], object], str]

REDUCERS = ("count", "mean", "min", "max", "sum", "median")


def _as_list(columns) -> list:
    if columns is None:
        return []
    if isinstance(columns, (list, tuple)):
        return list(columns)
    return [columns]


def row_mask(
    table: pd.DataFrame,
    predicate: Predicate | None = None,
    **conditions,
) -> pd.Series:
    """
    Evaluate a row condition to a boolean Series.

    **Functionally**:
      - predicate may be a callable receiving the table, or a pandas
        expression string evaluated with DataFrame.eval.
      - Each keyword condition compares a column with a value; a list, tuple,
        set or frozenset value means "is one of".
      - All conditions are combined with AND.
      - Missing results count as False (a row whose age is unknown is not
        "age >= 18").

    Args:
        table: Table to evaluate against.
        predicate: Optional callable or expression string.
        **conditions: column=value or column=[values].

    Returns:
        Boolean Series aligned with table.index.

    Raises:
        KeyError: If a condition names an unknown column.
    """
    mask = pd.Series(True, index=table.index)

    if predicate is not None:
        if isinstance(predicate, str):
            result = table.eval(predicate)
        else:
            result = predicate(table)
        result = pd.Series(result, index=table.index) if not isinstance(result, pd.Series) else result
        mask &= result.astype("boolean").fillna(False).astype(bool)

    for column, value in conditions.items():
        if column not in table.columns:
            raise KeyError(f"Unknown column in condition: '{column}'")
        if isinstance(value, (list, tuple, set, frozenset)):
            matches = table[column].isin(list(value))
        else:
            matches = table[column] == value
        mask &= matches.fillna(False).astype(bool)

    return mask


def order_by(
    table: pd.DataFrame,
    by,
    descending: bool | list[bool] = False,
) -> pd.DataFrame:
    """
    Stable sort by one or more columns.

    Rows that tie on every key keep their original relative order, and missing
    keys sort last. The result has a fresh 0..n-1 index.

    Args:
        table: Table to sort.
        by: Column name or list of names.
        descending: One flag for all keys, or one flag per key.

    Returns:
        Sorted copy of the table.
    """
    keys = _as_list(by)
    ascending = (
        [not d for d in descending]
        if isinstance(descending, (list, tuple))
        else not descending
    )
    return table.sort_values(keys, ascending=ascending, kind="mergesort", na_position="last").reset_index(drop=True)


def project(table: pd.DataFrame, columns) -> pd.DataFrame:
    """
    Keep only the named columns, in the order given.

    Raises:
        KeyError: If any column is unknown.
    """
    columns = _as_list(columns)
    unknown = [c for c in columns if c not in table.columns]
    if unknown:
        raise KeyError(f"Unknown columns: {unknown}")
    return table[columns].copy()


def filter_rows(
    table: pd.DataFrame,
    predicate: Predicate | None = None,
    **conditions,
) -> pd.DataFrame:
    """
    Keep the rows where the condition holds, in their original order.

    Example:
        >>> filter_rows(df, UF=["Rio Grande do Sul", "Santa Catarina"])
        >>> filter_rows(df, lambda t: t["V2009"] >= 18)
        >>> filter_rows(df, "V2009 >= 18 and V2009 < 65")
    """
    mask = row_mask(table, predicate, **conditions)
    return table[mask].reset_index(drop=True)


def ratio(numerator: str, denominator: str) -> Callable[[pd.DataFrame], pd.Series]:
    """
    Build a derive() expression dividing one column by another.

    Division by zero or by a missing value yields NaN.

    Example:
        >>> derive(df, "renda_per_capita", ratio("VD4019", "V2001"))
    """
    def expression(table: pd.DataFrame) -> pd.Series:
        return safe_ratio(table[numerator], table[denominator])

    return expression


def derive(
    table: pd.DataFrame,
    name: str,
    expression: Predicate,
) -> pd.DataFrame:
    """
    Add (or replace) a computed column.

    **Functionally**:
      - expression is a callable receiving the table, or an expression
        string evaluated with DataFrame.eval ("VD4019 / V2001").
      - Infinite results (x / 0) are stored as NaN.

    Args:
        table: Source table.
        name: Name of the new column.
        expression: How to compute it.

    Returns:
        Copy of the table with the new column.
    """
    result = table.copy()

    if isinstance(expression, str):
        with np.errstate(divide="ignore", invalid="ignore"):
            values = table.eval(expression)
    else:
        values = expression(table)

    if isinstance(values, pd.Series) and pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        values = values.replace([np.inf, -np.inf], np.nan)

    result[name] = values
    return result


def aggregate(
    table: pd.DataFrame,
    by=None,
    reductions: dict[str, tuple[str, str]] | None = None,
    proportions: bool = False,
    count_column: str = "Freq",
) -> pd.DataFrame:
    """
    Group and summarise a table.

    **Conceptual**: The workhorse for descriptive tables. With `by` it answers
    "how many records per group, and what is their average age?"; without `by`
    it collapses the whole table to a single summary row.

    **Functionally**:
      - Each reduction is output_name=(column, function) with function one of
        count, mean, min, max, sum, median. Missing values are skipped, and a
        group with no observed values yields NaN (count yields 0).
      - With `by`, a `count_column` holds the number of rows per group.
        Missing keys form their own group.
      - proportions=True adds Prop = Freq / ΣFreq and sorts by Prop descending.

    Args:
        table: Table to summarise.
        by: Column name, list of names, or None for a whole-table summary.
        reductions: Mapping of output name to (column, function).
        proportions: Add a Prop column (requires `by`).
        count_column: Name of the per-group row count column.

    Returns:
        Summary table.

    Raises:
        KeyError: If a column is unknown.
        ValueError: If a reduction function is unknown, or proportions is
                    requested without `by`.

    Example:
        >>> aggregate(df, by="V2010", proportions=True)
        >>> aggregate(df, reductions={"idade_media": ("V2009", "mean")})
    """
    keys = _as_list(by)
    reductions = reductions or {}

    for name, (column, func) in reductions.items():
        if func not in REDUCERS:
            raise ValueError(f"Unknown reduction '{func}' for '{name}'. Use one of {REDUCERS}.")
        if column not in table.columns:
            raise KeyError(f"Unknown column in reduction '{name}': '{column}'")

    unknown = [k for k in keys if k not in table.columns]
    if unknown:
        raise KeyError(f"Unknown grouping columns: {unknown}")

    if not keys:
        if proportions:
            raise ValueError("proportions=True requires at least one grouping column")
        summary = {
            name: getattr(table[column].dropna(), func)()
            for name, (column, func) in reductions.items()
        }
        return pd.DataFrame([summary])

    grouped = table.groupby(keys, observed=True, dropna=False, sort=True)
    result = grouped.size().rename(count_column).to_frame()
    for name, (column, func) in reductions.items():
        result[name] = grouped[column].agg(func)
    result = result.reset_index()

    if proportions:
        total = result[count_column].sum()
        result["Prop"] = result[count_column] / total
        result = order_by(result, "Prop", descending=True)

    return result
