"""
Income inequality: the weighted Gini coefficient.

**Conceptual**: The Gini coefficient summarises how unequally a variable
(usually income) is spread across the population:
  - 0: everybody has the same income.
  - close to 1: one person holds everything.

Brazil's labour-income Gini sits around 0.5, one of the highest in the world,
which is why it is a standard indicator in PNADC releases.

**Mathematical**: Sort the records by income y. With weights w, running
weight r_k = Σ_{l≤k} w_l, population N = Σ w and total income T = Σ w·y:

    G = (2 · Σ w_k y_k r_k  -  Σ w_k² y_k) / (N · T)  -  1

**Standard error**: G is a smooth function of weighted sums, so its variance
comes from linearization. The influence value of record k is

    z_k = [2(r_k y_k - C_k) + T - N y_k - G (T + N y_k)] / (N T)

where C_k = Σ_{l≤k} w_l y_l is the running income total. The weighted z sum
to zero, as every influence function must. No survey library ships this
influence function, so it is computed here; the design variance of Σ w·z
(the standard error) still comes from samplics through SurveyDesign.estimate.

**Teaching note**: Inequality estimators need the design to be prepared once
(prepare_for_inequality) before any subsetting, so the domain estimate is
always tied to the full sample structure.
"""

import numpy as np
import pandas as pd

from pnadc_survey.analytics.estimators import Estimate, resolve_domain, is_categorical
from pnadc_survey.survey.design import SurveyDesign
from pnadc_survey.survey.errors import DesignNotPreparedError


def gini_coefficient(values, weights) -> float:
    """
    Weighted Gini coefficient of a sample.

    Args:
        values: Incomes (no NaN).
        weights: Positive weights, same length.

    Returns:
        Gini coefficient, or NaN when the total is not positive.

    Example:
        >>> gini_coefficient([10, 10, 10], [1, 1, 1])
        0.0
        >>> gini_coefficient([0, 0, 0, 100], [1, 1, 1, 1])
        0.75
    """
    gini, _ = _gini_with_influence(np.asarray(values, dtype=float), np.asarray(weights, dtype=float))
    return gini


def _gini_with_influence(y: np.ndarray, w: np.ndarray) -> tuple[float, np.ndarray]:
    """Point estimate and per-record influence values (in input order)."""
    if len(y) == 0:
        return float("nan"), np.array([], dtype=float)

    order = np.argsort(y, kind="mergesort")
    y_sorted, w_sorted = y[order], w[order]

    population = w_sorted.sum()
    total = (w_sorted * y_sorted).sum()
    if total <= 0:
        return float("nan"), np.full(len(y), np.nan)

    running_weight = np.cumsum(w_sorted)
    running_income = np.cumsum(w_sorted * y_sorted)

    gini = (
        2.0 * (w_sorted * y_sorted * running_weight).sum()
        - (w_sorted ** 2 * y_sorted).sum()
    ) / (population * total) - 1.0

    influence_sorted = (
        2.0 * (running_weight * y_sorted - running_income)
        + total
        - population * y_sorted
        - gini * (total + population * y_sorted)
    ) / (population * total)

    influence = np.empty_like(influence_sorted)
    influence[order] = influence_sorted
    return float(gini), influence


def survey_gini(design: SurveyDesign, variable: str, na_rm: bool = False) -> Estimate:
    """
    Estimated Gini coefficient with linearized standard error.

    Args:
        design: Design passed through prepare_for_inequality (optionally subset).
        variable: Numeric income column (e.g., "VD4020").
        na_rm: Drop records with missing income instead of returning NaN.

    Returns:
        Estimate with statistic "gini".

    Raises:
        DesignNotPreparedError: If prepare_for_inequality was not applied.
        EmptySubsetError: If the domain has no records.
        ValueError: If the variable is categorical.

    Example:
        >>> design = prepare_for_inequality(pnadc_design(df))
        >>> survey_gini(design, "VD4020", na_rm=True).value
        0.52
    """
    if not design.is_prepared_for_inequality:
        raise DesignNotPreparedError(
            "survey_gini needs a design prepared with prepare_for_inequality(design)."
        )

    y, mask = resolve_domain(design, variable, na_rm, "gini")
    if is_categorical(y):
        raise ValueError(f"Gini needs a numeric variable; '{variable}' is categorical")

    if mask is None:
        nan = pd.Series([np.nan], index=[variable], dtype=float)
        return Estimate(statistic="gini", variable=variable, values=nan, std_errors=nan.copy())

    values = y.to_numpy(dtype=float, na_value=np.nan)
    w = design.weights.to_numpy()

    gini, influence = _gini_with_influence(values[mask], w[mask])

    if np.isnan(gini):
        se = np.nan
    else:
        scores = np.zeros(len(values))
        scores[mask] = influence
        _, se = design.estimate("total", scores, mask)

    return Estimate(
        statistic="gini",
        variable=variable,
        values=pd.Series([gini], index=[variable], dtype=float),
        std_errors=pd.Series([se], index=[variable], dtype=float),
    )
