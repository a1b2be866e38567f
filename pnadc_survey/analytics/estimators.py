"""
Design-based estimators: totals, means, proportions, quantiles, tables.

**Conceptual**: Each estimator answers a population question ("how many
people in Brazil self-identify as Parda?", "what is the median income in Rio
Grande do Sul?") from a SurveyDesign, and reports a standard error that
reflects the actual sampling scheme (strata, clustered PSUs, post-strata).

**How the standard errors work** (Taylor linearization): every total and
mean, including the category proportions and the Woodruff share behind a
quantile, is handed to samplics' TaylorEstimator through
SurveyDesign.estimate. The subset travels as a domain label, so the whole
sample structure enters the variance.

**Missing data**:
  - na_rm=False and the variable has missing values in the domain → the
    estimate is NaN (undefined), never a silently shrunken number.
  - na_rm=True → missing records are excluded from the domain; if nothing is
    left, the estimate is NaN.
  - A domain with no records at all raises EmptySubsetError.

**Teaching note**: Compare weighted_frequency with unweighted_frequency on the
same variable. The differences are exactly what the sampling design corrects.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from pnadc_survey.analytics.transforms import aggregate, order_by
from pnadc_survey.survey.design import SurveyDesign
from pnadc_survey.survey.errors import EmptySubsetError
from pnadc_survey.utils.math import weighted_quantile


@dataclass(frozen=True, eq=False)
class Estimate:
    """
    Point estimates with standard errors.

    Attributes:
        statistic: "total", "mean", "quantile" or "gini".
        variable: Target variable name.
        values: Point estimates indexed by label (the variable name for a
                numeric target, category names for a categorical one,
                probabilities for quantiles).
        std_errors: Standard errors, same index.
        intervals: Optional precomputed confidence intervals (Woodruff for
                   quantiles), columns "lower" and "upper".
        interval_level: Confidence level of `intervals`.
    """
    statistic: str
    variable: str
    values: pd.Series
    std_errors: pd.Series
    intervals: Optional[pd.DataFrame] = None
    interval_level: Optional[float] = None

    @property
    def value(self) -> float:
        """The single point estimate (numeric targets)."""
        if len(self.values) != 1:
            raise ValueError(
                f"Estimate of '{self.variable}' has {len(self.values)} values; "
                f"use .values instead of .value"
            )
        return float(self.values.iloc[0])

    @property
    def std_error(self) -> float:
        """The single standard error (numeric targets)."""
        if len(self.std_errors) != 1:
            raise ValueError(
                f"Estimate of '{self.variable}' has {len(self.std_errors)} values; "
                f"use .std_errors instead of .std_error"
            )
        return float(self.std_errors.iloc[0])

    @property
    def is_defined(self) -> bool:
        """False when any point estimate is NaN."""
        return bool(self.values.notna().all())

    def cv(self) -> pd.Series:
        """Coefficient of variation (SE / estimate); NaN where the estimate is 0."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return (self.std_errors / self.values).replace([np.inf, -np.inf], np.nan)

    def confint(self, level: float = 0.95) -> pd.DataFrame:
        """
        Confidence intervals.

        Uses the stored intervals when they were computed at the same level,
        otherwise the normal approximation estimate ± z·SE.
        """
        if self.intervals is not None and self.interval_level is not None and np.isclose(level, self.interval_level):
            return self.intervals.copy()

        z = stats.norm.ppf(0.5 + level / 2.0)
        return pd.DataFrame({
            "lower": self.values - z * self.std_errors,
            "upper": self.values + z * self.std_errors,
        })

    def to_frame(self) -> pd.DataFrame:
        """Two-column table: the statistic and its SE, indexed by label."""
        return pd.DataFrame({self.statistic: self.values, "SE": self.std_errors})


def _undefined(statistic: str, variable: str, labels: list) -> Estimate:
    nan = pd.Series(np.nan, index=labels, dtype=float)
    return Estimate(statistic=statistic, variable=variable, values=nan, std_errors=nan.copy())


def _require_column(design: SurveyDesign, variable: str) -> pd.Series:
    if variable not in design.data.columns:
        raise KeyError(f"Variable '{variable}' not found in design data")
    return design.data[variable]


def is_categorical(values: pd.Series) -> bool:
    return (
        isinstance(values.dtype, pd.CategoricalDtype)
        or pd.api.types.is_bool_dtype(values)
        or not pd.api.types.is_numeric_dtype(values)
    )


def _levels(values: pd.Series, mask: np.ndarray | None = None) -> list:
    """Category order: declared categories, else sorted observed values."""
    if isinstance(values.dtype, pd.CategoricalDtype):
        return list(values.cat.categories)
    observed = values if mask is None else values[mask]
    return sorted(observed.dropna().unique().tolist())


def resolve_domain(
    design: SurveyDesign,
    variable: str,
    na_rm: bool,
    statistic: str,
) -> tuple[pd.Series, Optional[np.ndarray]]:
    """
    Resolve the effective domain for an estimate.

    Returns the target column and the boolean mask of contributing records,
    or None as mask when the estimate is undefined because of missing values.

    Raises:
        EmptySubsetError: If the domain has no records.
    """
    y = _require_column(design, variable)
    mask = design.domain_mask

    if not mask.any():
        raise EmptySubsetError(
            f"Cannot estimate {statistic} of '{variable}': the subset has no records."
        )

    missing = y.isna().to_numpy() & mask
    if missing.any():
        if not na_rm:
            return y, None
        mask = mask & ~missing

    if not mask.any():
        return y, None

    return y, mask


def _estimate_levels(
    design: SurveyDesign,
    parameter: str,
    y: pd.Series,
    labels: list,
    mask: np.ndarray,
) -> tuple[list, list]:
    """One estimate per label (0/1 indicators for a categorical target)."""
    if not is_categorical(y):
        value, se = design.estimate(parameter, y.to_numpy(dtype=float, na_value=0.0), mask)
        return [value], [se]

    codes = pd.Categorical(y, categories=labels).codes
    values, std_errors = [], []
    for k in range(len(labels)):
        value, se = design.estimate(parameter, (codes == k).astype(float), mask)
        values.append(value)
        std_errors.append(se)
    return values, std_errors


def survey_total(design: SurveyDesign, variable: str, na_rm: bool = False) -> Estimate:
    """
    Estimated population total.

    **Conceptual**: Σ w·y over the domain. For a categorical variable this is
    the estimated number of people in each category.

    Args:
        design: Survey design (optionally subset).
        variable: Target column.
        na_rm: Drop records with missing target instead of returning NaN.

    Returns:
        Estimate with statistic "total".

    Raises:
        EmptySubsetError: If the domain has no records.
        KeyError: If the variable is unknown.

    Example:
        >>> survey_total(design, "V2010").to_frame()
                      total          SE
        Branca   90000000.0   450000.0
        ...
    """
    y, mask = resolve_domain(design, variable, na_rm, "total")
    labels = _levels(y, design.domain_mask) if is_categorical(y) else [variable]

    if mask is None:
        return _undefined("total", variable, labels)

    totals, se = _estimate_levels(design, "total", y, labels, mask)

    return Estimate(
        statistic="total",
        variable=variable,
        values=pd.Series(totals, index=labels, dtype=float),
        std_errors=pd.Series(se, index=labels, dtype=float),
    )


def survey_mean(design: SurveyDesign, variable: str, na_rm: bool = False) -> Estimate:
    """
    Estimated population mean (or category proportions).

    **Mathematical**: ȳ = Σ w·y / Σ w over the domain, a ratio of two totals.
    For categorical targets y is the 0/1 indicator of each level, giving
    proportions that sum to 1.

    Args:
        design: Survey design (optionally subset).
        variable: Target column.
        na_rm: Drop records with missing target instead of returning NaN.

    Returns:
        Estimate with statistic "mean".

    Raises:
        EmptySubsetError: If the domain has no records.
        KeyError: If the variable is unknown.
    """
    y, mask = resolve_domain(design, variable, na_rm, "mean")
    labels = _levels(y, design.domain_mask) if is_categorical(y) else [variable]

    if mask is None:
        return _undefined("mean", variable, labels)

    means, se = _estimate_levels(design, "mean", y, labels, mask)

    return Estimate(
        statistic="mean",
        variable=variable,
        values=pd.Series(means, index=labels, dtype=float),
        std_errors=pd.Series(se, index=labels, dtype=float),
    )


def survey_quantile(
    design: SurveyDesign,
    variable: str,
    quantiles=0.5,
    na_rm: bool = False,
    level: float = 0.95,
) -> Estimate:
    """
    Estimated population quantiles with Woodruff standard errors.

    **Conceptual**: The weighted median income is the income below which half
    of the population (not half of the sample) lives.

    **Woodruff method** (how the SE is obtained):
      1. Estimate the quantile q̂ for probability p.
      2. Estimate the standard error of F̂(q̂), the population share with
         y ≤ q̂. It is the mean of a 0/1 indicator, estimated by the design.
      3. Invert the interval p ± z·SE(F̂) back through the weighted quantile
         function to get [q_lo, q_hi].
      4. SE(q̂) = (q_hi - q_lo) / (2z).

    Args:
        design: Survey design (optionally subset).
        variable: Numeric target column.
        quantiles: Probability or list of probabilities in [0, 1].
        na_rm: Drop records with missing target instead of returning NaN.
        level: Confidence level used for the Woodruff interval.

    Returns:
        Estimate indexed by probability, with Woodruff intervals attached.

    Raises:
        EmptySubsetError: If the domain has no records.
        ValueError: If a probability or the level is outside its range, or
                    the variable is not numeric.
    """
    probs = np.atleast_1d(np.asarray(quantiles, dtype=float))
    if ((probs < 0) | (probs > 1)).any():
        raise ValueError(f"quantiles must be in [0, 1], got: {probs.tolist()}")
    if not 0.0 < level < 1.0:
        raise ValueError(f"level must be in (0, 1), got: {level}")

    y, mask = resolve_domain(design, variable, na_rm, "quantile")
    if is_categorical(y):
        raise ValueError(f"Quantiles need a numeric variable; '{variable}' is categorical")

    labels = probs.tolist()
    if mask is None:
        return _undefined("quantile", variable, labels)

    w = design.weights.to_numpy()
    values = y.to_numpy(dtype=float, na_value=np.nan)
    y_domain, w_domain = values[mask], w[mask]

    q_hat = weighted_quantile(y_domain, w_domain, probs)
    z = stats.norm.ppf(0.5 + level / 2.0)

    std_errors, lower, upper = [], [], []
    for p, q in zip(probs, q_hat):
        below = (np.nan_to_num(values) <= q).astype(float)
        _, se_share = design.estimate("mean", below, mask)

        p_lo = min(max(p - z * se_share, 0.0), 1.0)
        p_hi = min(max(p + z * se_share, 0.0), 1.0)
        q_lo, q_hi = weighted_quantile(y_domain, w_domain, [p_lo, p_hi])

        lower.append(q_lo)
        upper.append(q_hi)
        std_errors.append((q_hi - q_lo) / (2.0 * z))

    return Estimate(
        statistic="quantile",
        variable=variable,
        values=pd.Series(q_hat, index=labels, dtype=float),
        std_errors=pd.Series(std_errors, index=labels, dtype=float),
        intervals=pd.DataFrame({"lower": lower, "upper": upper}, index=labels),
        interval_level=level,
    )


def survey_table(design: SurveyDesign, *variables: str) -> pd.DataFrame:
    """
    Weighted frequency table over one or two categorical variables.

    **Conceptual**: The population version of a cross-tab. Each cell is the
    estimated number of people with that combination of categories. Every
    combination of levels is listed, including those with zero weight.
    Records with a missing value in any of the variables are left out.

    **Functionally**: Each cell is a domain. A single samplics pass estimates
    the total of a constant 1 in every cell domain; records outside the
    subset (or with missing keys) get the domain label -1 and value 0.

    Args:
        design: Survey design (optionally subset).
        *variables: One or two column names.

    Returns:
        DataFrame with one column per variable (categorical, in level order),
        plus Freq and SE.

    Raises:
        ValueError: If no variable, or more than two, are given.
        EmptySubsetError: If the domain has no records.
    """
    if not 1 <= len(variables) <= 2:
        raise ValueError(f"survey_table takes one or two variables, got {len(variables)}")

    columns = [_require_column(design, v) for v in variables]
    domain = design.domain_mask
    if not domain.any():
        raise EmptySubsetError(
            f"Cannot tabulate {list(variables)}: the subset has no records."
        )

    levels = [_levels(col, domain) for col in columns]
    codes = [pd.Categorical(col, categories=lv).codes for col, lv in zip(columns, levels)]
    complete = domain & np.logical_and.reduce([c >= 0 for c in codes])

    shape = tuple(len(lv) for lv in levels)
    n_cells = int(np.prod(shape))
    cell = np.full(len(design.data), -1, dtype=np.int64)
    if complete.any():
        cell[complete] = np.ravel_multi_index(tuple(c[complete] for c in codes), shape)

    points, errors = design.estimate_by_domain("total", complete.astype(float), cell)

    freq = [float(points.get(k, 0.0)) for k in range(n_cells)]
    se = [float(errors.get(k, 0.0)) for k in range(n_cells)]

    index = pd.MultiIndex.from_product(levels, names=list(variables))
    result = pd.DataFrame({"Freq": freq, "SE": se}, index=index).reset_index()
    for name, lv in zip(variables, levels):
        result[name] = pd.Categorical(result[name], categories=lv)
    return result


def weighted_frequency(design: SurveyDesign, variable: str) -> pd.DataFrame:
    """
    Weighted frequency and proportion of each level, largest first.

    Returns:
        DataFrame with columns [variable, Freq, SE, Prop].
    """
    table = survey_table(design, variable)
    total = table["Freq"].sum()
    table["Prop"] = table["Freq"] / total if total > 0 else np.nan
    return order_by(table, "Prop", descending=True)


def unweighted_frequency(table: pd.DataFrame, variable: str) -> pd.DataFrame:
    """
    Sample counts and proportions of each level, largest first.

    Missing values form their own group, as in a plain count of the sample.

    Returns:
        DataFrame with columns [variable, Freq, Prop].
    """
    return aggregate(table, by=variable, proportions=True)


def compare_weighted_unweighted(
    table: pd.DataFrame,
    design: SurveyDesign,
    variable: str,
) -> pd.DataFrame:
    """
    Side-by-side sample and population proportions.

    **Teaching note**: The "difference" column is the correction the weights
    apply. Groups that were over-sampled show a negative difference.

    Returns:
        DataFrame with columns [variable, Prop_unweighted, Prop_weighted,
        difference], sorted by weighted proportion descending.
    """
    unweighted = unweighted_frequency(table, variable)[[variable, "Prop"]].copy()
    weighted = weighted_frequency(design, variable)[[variable, "Prop"]].copy()

    unweighted[variable] = unweighted[variable].astype(object)
    weighted[variable] = weighted[variable].astype(object)

    merged = weighted.merge(
        unweighted,
        on=variable,
        how="outer",
        suffixes=("_weighted", "_unweighted"),
    )
    merged = merged[[variable, "Prop_unweighted", "Prop_weighted"]].fillna({"Prop_unweighted": 0.0, "Prop_weighted": 0.0})
    merged["difference"] = merged["Prop_weighted"] - merged["Prop_unweighted"]
    return order_by(merged, "Prop_weighted", descending=True)
