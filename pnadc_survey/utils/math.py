"""
Numerical helpers shared by the estimators.

Weighted quantiles (via statsmodels) and division that never produces
infinities. Design-based variance lives in survey/design.py, which delegates
to samplics.
"""

import numpy as np
import pandas as pd
from statsmodels.stats.weightstats import DescrStatsW


def safe_ratio(numerator, denominator) -> pd.Series:
    """
    Element-wise division where undefined results become NaN.

    **Conceptual**: Dividing household income by household size is meaningless
    when the size is zero or missing. Plain numpy division returns ±inf for
    x/0, which then poisons means and charts. Here every undefined ratio is
    reported as missing instead.

    Args:
        numerator: Series, array or scalar.
        denominator: Series, array or scalar.

    Returns:
        Float Series (index taken from the numerator when it is a Series).
    """
    num = pd.to_numeric(pd.Series(numerator), errors="coerce").astype(float)
    den = pd.to_numeric(pd.Series(denominator), errors="coerce").astype(float)
    if isinstance(numerator, pd.Series):
        num.index = numerator.index
        if len(den) == len(num):
            den.index = numerator.index

    with np.errstate(divide="ignore", invalid="ignore"):
        result = num / den

    return result.replace([np.inf, -np.inf], np.nan)


def weighted_quantile(values, weights, probs) -> np.ndarray:
    """
    Weighted quantiles of a sample.

    **Conceptual**: The weighted median is the value below which half of the
    *population* (not half of the sample) lies. Each record counts as many
    people as its weight says.

    **Mathematical**: Sort the distinct values y_1 < ... < y_n, with summed
    weights w_j and running sums s_j, total W. For probability p, the quantile
    is y_{j+1} when pW falls strictly between s_j and s_{j+1}, and the midpoint
    of y_j and y_{j+1} when pW equals s_j exactly.

    Delegates to statsmodels' DescrStatsW.quantile, which implements that rule.

    Args:
        values: 1-D array of observations (no NaN).
        weights: 1-D array of positive weights, same length.
        probs: Scalar or sequence of probabilities in [0, 1].

    Returns:
        Array of quantiles, one per probability.
    """
    probs = np.atleast_1d(np.asarray(probs, dtype=float))
    stats = DescrStatsW(np.asarray(values, dtype=float), weights=np.asarray(weights, dtype=float))
    return np.asarray(stats.quantile(probs, return_pandas=False), dtype=float)
