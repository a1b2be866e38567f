"""
Complex survey design: weights, strata, clusters and domains.

**Conceptual**: The PNAD Contínua is not a simple random sample. IBGE first
splits the country into strata (Estrato), draws primary sampling units (UPA,
groups of households) inside each stratum, then interviews households inside
the chosen PSUs. Each person carries a weight saying how many people they
represent. A SurveyDesign bundles the table with that sampling metadata so
that every estimator can produce both a point estimate *and* an honest
standard error.

**Why a dedicated object?**
  - Estimates from the raw table (df["VD4016"].mean()) are biased because they
    ignore the weights.
  - Standard errors from textbook formulas are too small because they ignore
    clustering (neighbours resemble each other).
  - Domain estimates ("only Rio Grande do Sul") must still use the whole
    sample to compute variance; simply dropping rows gives wrong answers.

**Variance**: Point estimates and Taylor-linearization standard errors come
from samplics' TaylorEstimator (stratified, with-replacement PSU variance).
Domains are passed to samplics as a domain label per record, so the full
sample structure is always used.

**Post-stratification**: The PNADC base weight (V1027) is adjusted so that the
weights of each post-stratum (posest) add up to IBGE's population projection
(V1029). The adjusted weight is w * N_g / Σ_g w. Standard errors treat the
adjusted weights as fixed.

**Teaching note**: This module mirrors the classic two-step workflow:
build the design once from the full sample, then subset it for domains.
Never filter the table first and build the design afterwards.
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
import pandas as pd
from samplics.estimation import TaylorEstimator
from samplics.utils.types import PopParam, SinglePSUEst

from pnadc_survey.analytics.transforms import row_mask
from pnadc_survey.config.settings import LONELY_PSU_POLICIES
from pnadc_survey.data.schemas import (
    BASE_WEIGHT_COLUMN,
    CALIBRATED_WEIGHT_COLUMN,
    POPULATION_COLUMN,
    POSTSTRATUM_COLUMN,
    PSU_COLUMN,
    STRATUM_COLUMN,
    SchemaValidationError,
    validate_design_columns,
    validate_required_columns,
)
from pnadc_survey.survey.errors import LonelyPsuError


PARAMETERS = {
    "total": PopParam.total,
    "mean": PopParam.mean,
}

SINGLE_PSU_RULES = {
    "fail": SinglePSUEst.error,
    "certainty": SinglePSUEst.certainty,
    "skip": SinglePSUEst.skip,
}


@dataclass(frozen=True, eq=False)
class SurveyDesign:
    """
    A sample table annotated with its sampling design.

    Attributes:
        data: Full sample table (0..n-1 index).
        weights: Final analysis weight per record (post-stratified if applicable).
        strata: Stratum label per record.
        clusters: PSU label per record, nested within strata.
        poststrata: Post-stratum label per record, or None.
        domain: Boolean mask of records in the current domain, or None for
                the whole sample.
        lonely_psu: Policy for strata with a single PSU.
        full_design: Set by prepare_for_inequality; the undivided design the
                     inequality estimators rank against.
    """
    data: pd.DataFrame
    weights: pd.Series
    strata: pd.Series
    clusters: pd.Series
    poststrata: Optional[pd.Series] = None
    domain: Optional[np.ndarray] = None
    lonely_psu: str = "fail"
    full_design: Optional["SurveyDesign"] = None

    def __post_init__(self):
        """Validate the design after initialization."""
        if self.lonely_psu not in LONELY_PSU_POLICIES:
            raise ValueError(
                f"lonely_psu must be one of {LONELY_PSU_POLICIES}, got: {self.lonely_psu}"
            )
        n = len(self.data)
        for name in ("weights", "strata", "clusters"):
            if len(getattr(self, name)) != n:
                raise ValueError(f"{name} has {len(getattr(self, name))} entries, expected {n}")
        if self.domain is not None and len(self.domain) != n:
            raise ValueError(f"domain has {len(self.domain)} entries, expected {n}")

    @property
    def domain_mask(self) -> np.ndarray:
        """Boolean array marking the records of the current domain."""
        if self.domain is None:
            return np.ones(len(self.data), dtype=bool)
        return np.asarray(self.domain, dtype=bool)

    @property
    def variables(self) -> pd.DataFrame:
        """Rows of the current domain."""
        return self.data[self.domain_mask]

    @property
    def n_records(self) -> int:
        """Number of records in the current domain."""
        return int(self.domain_mask.sum())

    @property
    def n_strata(self) -> int:
        return int(self.strata.nunique())

    @property
    def n_psu(self) -> int:
        return int(self.psu_ids.nunique())

    @property
    def psu_ids(self) -> pd.Series:
        """PSU identifier unique across strata ("stratum/psu")."""
        return self.strata + "/" + self.clusters

    @property
    def is_prepared_for_inequality(self) -> bool:
        return self.full_design is not None

    def subset(self, predicate=None, **conditions) -> "SurveyDesign":
        """
        Restrict the design to a domain.

        **Conceptual**: A subset keeps every record (and therefore every PSU)
        for variance estimation but marks which ones belong to the domain.
        Estimators then treat out-of-domain records as contributing zero.
        Subsetting a subset narrows the domain further.

        An empty domain is allowed here; estimators raise EmptySubsetError.

        Args:
            predicate: Callable or expression string (see transforms.row_mask).
            **conditions: column=value or column=[values].

        Returns:
            New SurveyDesign sharing the same data, weights and structure.

        Example:
            >>> rs = design.subset(UF="Rio Grande do Sul")
            >>> adults = design.subset(lambda t: t["V2009"] >= 18)
        """
        mask = row_mask(self.data, predicate, **conditions).to_numpy(dtype=bool)
        return replace(self, domain=self.domain_mask & mask)

    def check_lonely_psu(self) -> None:
        """
        Raise LonelyPsuError when a stratum has one PSU and the policy is "fail".
        """
        if self.lonely_psu != "fail":
            return
        psu_per_stratum = self.psu_ids.groupby(self.strata).nunique()
        lonely = psu_per_stratum[psu_per_stratum == 1]
        if not lonely.empty:
            raise LonelyPsuError(
                f"Stratum '{lonely.index[0]}' has only one PSU ({len(lonely)} such strata). "
                f"Set lonely_psu to 'certainty' or 'skip' to estimate anyway."
            )

    def estimate_by_domain(self, parameter: str, values, domains) -> tuple[dict, dict]:
        """
        Taylor-linearization estimates for several domains in one pass.

        **Functionally**: Hands the whole sample to samplics' TaylorEstimator
        with one domain label per record. Every record keeps its stratum and
        PSU, so each domain's standard error reflects the full design.

        Args:
            parameter: "total" or "mean".
            values: Numeric value per record (no NaN).
            domains: Domain label per record.

        Returns:
            (point estimates, standard errors), both dicts keyed by domain label.
            Labels without records are absent.

        Raises:
            LonelyPsuError: Single-PSU stratum under the "fail" policy.
        """
        if parameter not in PARAMETERS:
            raise ValueError(f"parameter must be one of {sorted(PARAMETERS)}, got: {parameter}")
        self.check_lonely_psu()

        estimator = TaylorEstimator(PARAMETERS[parameter])
        estimator.estimate(
            y=np.asarray(values, dtype=float),
            samp_weight=self.weights.to_numpy(dtype=float),
            stratum=self.strata.to_numpy(),
            psu=self.psu_ids.to_numpy(),
            domain=np.asarray(domains),
            single_psu=SINGLE_PSU_RULES[self.lonely_psu],
        )
        return dict(estimator.point_est), dict(estimator.stderror)

    def estimate(self, parameter: str, values, mask: Optional[np.ndarray] = None) -> tuple[float, float]:
        """
        Point estimate and standard error of a total or mean over a domain.

        Args:
            parameter: "total" or "mean".
            values: Numeric value per record; only entries inside the mask are read.
            mask: Records of the domain (defaults to the design's domain).

        Returns:
            (estimate, standard error) as floats.
        """
        mask = self.domain_mask if mask is None else np.asarray(mask, dtype=bool)
        values = np.where(mask, np.asarray(values, dtype=float), 0.0)
        points, errors = self.estimate_by_domain(parameter, values, mask.astype(int))
        return float(points[1]), float(errors[1])

    def __repr__(self) -> str:
        domain = "" if self.domain is None else f", domain={self.n_records}"
        post = "" if self.poststrata is None else f", poststrata={self.poststrata.nunique()}"
        return (
            f"SurveyDesign(records={len(self.data)}{domain}, strata={self.n_strata}, "
            f"psu={self.n_psu}{post}, lonely_psu='{self.lonely_psu}')"
        )

def build_design(
    table: pd.DataFrame,
    weight: str,
    strata: str,
    psu: str,
    poststrata: str | None = None,
    population: str | None = None,
    lonely_psu: str = "fail",
) -> SurveyDesign:
    """
    Attach sampling metadata to a table.

    **Functionally**:
      - Validates weight/stratum/PSU columns (positive non-missing weights,
        non-missing labels).
      - PSUs are nested in strata: PSU "1" of stratum A and PSU "1" of
        stratum B are different units.
      - When `poststrata` and `population` are given, weights are rescaled
        so that each post-stratum's weights sum to its population total.

    Args:
        table: Labelled table (one row per person).
        weight: Base weight column.
        strata: Stratum column.
        psu: Primary sampling unit column.
        poststrata: Optional post-stratum column.
        population: Population total per post-stratum (required with poststrata).
        lonely_psu: "fail", "certainty" or "skip".

    Returns:
        SurveyDesign over the whole table.

    Raises:
        SchemaValidationError: If design columns are missing or invalid.
        ValueError: If only one of poststrata/population is given.
    """
    if (poststrata is None) != (population is None):
        raise ValueError("poststrata and population must be given together")

    validate_design_columns(table, weight=weight, strata=strata, psu=psu, context="build_design")

    data = table.reset_index(drop=True)
    weights = data[weight].astype(float)
    groups = None

    if poststrata is not None:
        validate_required_columns(data, [poststrata, population], context="build_design")

        missing = data[poststrata].isna() | data[population].isna()
        if missing.any():
            raise SchemaValidationError(
                f"build_design: Post-stratification columns '{poststrata}'/'{population}' "
                f"have missing values at row indices: {data.index[missing].tolist()[:5]} (showing first 5)."
            )

        inconsistent = data.groupby(poststrata, observed=True)[population].nunique()
        inconsistent = inconsistent[inconsistent > 1]
        if not inconsistent.empty:
            raise SchemaValidationError(
                f"build_design: Population column '{population}' is not constant within "
                f"post-strata: {inconsistent.index.tolist()[:5]} (showing first 5)."
            )

        groups = data[poststrata].astype(str)
        population_totals = data[population].astype(float).groupby(groups).first()
        weight_totals = weights.groupby(groups).sum()
        factor = population_totals / weight_totals
        weights = weights * groups.map(factor)

    return SurveyDesign(
        data=data,
        weights=weights.rename("weight"),
        strata=data[strata].astype(str),
        clusters=data[psu].astype(str),
        poststrata=groups,
        lonely_psu=lonely_psu,
    )


def pnadc_design(table: pd.DataFrame, lonely_psu: str = "fail") -> SurveyDesign:
    """
    Build the standard PNADC quarterly design.

    **Conceptual**: IBGE's convention is ids=UPA, strata=Estrato and base
    weight V1027 post-stratified to the population projection V1029 by
    posest. Older extracts (or tables trimmed by hand) may only carry the
    already calibrated weight V1028, which is used as-is.

    Args:
        table: Labelled PNADC table.
        lonely_psu: Single-PSU stratum policy.

    Returns:
        SurveyDesign.

    Raises:
        SchemaValidationError: If neither weighting scheme is available.
    """
    post_columns = {BASE_WEIGHT_COLUMN, POPULATION_COLUMN, POSTSTRATUM_COLUMN}

    if post_columns.issubset(table.columns):
        return build_design(
            table,
            weight=BASE_WEIGHT_COLUMN,
            strata=STRATUM_COLUMN,
            psu=PSU_COLUMN,
            poststrata=POSTSTRATUM_COLUMN,
            population=POPULATION_COLUMN,
            lonely_psu=lonely_psu,
        )

    if CALIBRATED_WEIGHT_COLUMN in table.columns:
        return build_design(
            table,
            weight=CALIBRATED_WEIGHT_COLUMN,
            strata=STRATUM_COLUMN,
            psu=PSU_COLUMN,
            lonely_psu=lonely_psu,
        )

    raise SchemaValidationError(
        f"pnadc_design: Need either {sorted(post_columns)} (post-stratified design) "
        f"or '{CALIBRATED_WEIGHT_COLUMN}' (calibrated weight). "
        f"Found columns: {list(table.columns)[:20]}."
    )


def prepare_for_inequality(design: SurveyDesign) -> SurveyDesign:
    """
    Enable inequality estimators (Gini) on a design.

    **Conceptual**: Inequality measures of a domain are computed from the
    domain's own income distribution, but their variance still needs the full
    sample structure. This step records the undivided design once; subsets
    taken afterwards keep the reference. Applying it twice is harmless.

    Returns:
        New SurveyDesign with full_design set (or the same design if already set).
    """
    if design.full_design is not None:
        return design
    return replace(design, full_design=replace(design, domain=None))
