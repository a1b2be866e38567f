"""
Column contracts and validation for PNADC tables.

**Conceptual**: This module defines the "data contracts" every downstream step
relies on. A PNADC table is only usable for design-based estimation if it
carries the sampling metadata: the primary sampling unit (UPA), the stratum
(Estrato) and a positive sampling weight for every record. Explicit contracts
and early validation are critical for:
  - Trustworthy estimates: a single missing weight silently shifts totals.
  - Debugging: clear error messages point exactly to the broken column.

**Schema philosophy**:
  - Column names are the official IBGE variable codes (V1027, VD4016, ...).
  - Design columns are checked once, when the design is built.
  - Validation raises SchemaValidationError with actionable messages.
"""

import pandas as pd


class SchemaValidationError(Exception):
    """
    Raised when a table or input file does not conform to the expected schema.

    **Conceptual**: This exception signals schema violations (missing columns,
    malformed layout files, invalid weights) and should include enough context
    (file path, column name, offending rows) for quick remediation.
    """
    pass


# Sampling-design variables of the quarterly PNADC
PSU_COLUMN = "UPA"
STRATUM_COLUMN = "Estrato"
BASE_WEIGHT_COLUMN = "V1027"
CALIBRATED_WEIGHT_COLUMN = "V1028"
POPULATION_COLUMN = "V1029"
POSTSTRATUM_COLUMN = "posest"

DESIGN_COLUMNS = [
    PSU_COLUMN,
    STRATUM_COLUMN,
    BASE_WEIGHT_COLUMN,
    CALIBRATED_WEIGHT_COLUMN,
    POPULATION_COLUMN,
    POSTSTRATUM_COLUMN,
]

# Character variables that are identifiers or measures, never category codes.
# Labelling skips them even when the dictionary lists a category for them.
NOT_LABELLED = frozenset([
    "Ano", "Trimestre", "UPA", "Estrato", "V1008", "V1014", "V1016",
    "V1027", "V1028", "V1029", "V1033", "posest", "posest_sxi",
    "V2001", "V2003", "V2008", "V20081", "V20082", "V2009",
    "V40081", "V40082", "V40083", "V4010", "V4013", "V401511", "V401512",
    "V4016", "V40171", "V401711", "V4018", "V40181", "V40182", "V40183",
    "V4019", "V4039", "V4039C", "V4040", "V40401", "V40402", "V40403",
    "V4041", "V4044", "V4056", "V4056C", "V4062", "V4062C", "V4071",
    "V4075A1", "V4076", "V40761", "V40762", "V40763",
    "VD4016", "VD4017", "VD4019", "VD4020", "VD4031", "VD4032", "VD4033",
    "VD4034", "VD4035", "VD4036", "VD4037",
])


def validate_required_columns(
    df: pd.DataFrame,
    required: list[str],
    context: str | None = None,
) -> None:
    """
    Validate that every required column is present.

    Args:
        df: Table to check.
        required: Column names that must exist.
        context: Optional description of the source, prefixed to messages.

    Raises:
        SchemaValidationError: If any column is missing.
    """
    ctx = f"{context}: " if context else ""

    missing_cols = [col for col in required if col not in df.columns]
    if missing_cols:
        raise SchemaValidationError(
            f"{ctx}Missing required columns: {missing_cols}. "
            f"Found columns: {list(df.columns)[:20]}"
            f"{' ...' if len(df.columns) > 20 else ''}."
        )


def validate_design_columns(
    df: pd.DataFrame,
    weight: str,
    strata: str,
    psu: str,
    context: str | None = None,
) -> None:
    """
    Validate the sampling metadata of a table before it becomes a design.

    **Conceptual**: Every record must belong to exactly one stratum and one
    primary sampling unit, and carry a strictly positive weight. A weight of
    zero would mean "this person represents nobody", which is never true for a
    sampled record; a missing weight makes every total undefined.

    **Functionally**:
      - Checks that the weight, stratum and PSU columns exist.
      - Checks that the weight column is numeric, non-missing and positive.
      - Checks that stratum and PSU labels are non-missing.

    Args:
        df: Table to validate (usually the output of label_pnadc).
        weight: Name of the weight column.
        strata: Name of the stratum column.
        psu: Name of the primary sampling unit column.
        context: Optional description of the source for error messages.

    Raises:
        SchemaValidationError: On any violation, naming up to 5 offending rows.
    """
    ctx = f"{context}: " if context else ""

    validate_required_columns(df, [weight, strata, psu], context=context)

    weights = df[weight]
    if not pd.api.types.is_numeric_dtype(weights):
        raise SchemaValidationError(
            f"{ctx}Weight column '{weight}' must be numeric, got dtype {weights.dtype}."
        )

    bad_weights = weights.isna() | (weights <= 0)
    if bad_weights.any():
        bad_indices = df.index[bad_weights].tolist()
        raise SchemaValidationError(
            f"{ctx}Weight column '{weight}' must be positive and non-missing. "
            f"Violations at row indices: {bad_indices[:5]} (showing first 5)."
        )

    for col in (strata, psu):
        missing = df[col].isna()
        if missing.any():
            bad_indices = df.index[missing].tolist()
            raise SchemaValidationError(
                f"{ctx}Design column '{col}' has missing values at row indices: "
                f"{bad_indices[:5]} (showing first 5)."
            )
