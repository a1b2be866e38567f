"""
Readers for the PNADC microdata, its SAS input layout and its dictionary.

**Conceptual**: IBGE distributes each quarter of the PNAD Contínua as three
pieces that only make sense together:
  1. A fixed-width text file (PNADC_032024.txt): one line per person, no
     separators, no header.
  2. A SAS "input" program (input_PNADC_trimestral.txt) stating where each
     variable starts, how wide it is, and whether it is character ($) or
     numeric.
  3. A spreadsheet dictionary (dicionario_PNADC_microdados_trimestral.xls)
     mapping category codes ("1", "2", ...) to names ("Branca", "Preta", ...).

This module is the *only* I/O boundary for those files. All loaders (offline
paths and online downloads) go through these functions, so every table in
the system is parsed, typed and labelled the same way.

**Teaching note**: Fixed-width files are common in official statistics because
they are compact and stable across decades. The price is that the layout lives
in a separate file; reading one without the other produces garbage silently.
Centralizing the parsing here keeps that coupling in one place.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd

from pnadc_survey.data.schemas import (
    DESIGN_COLUMNS,
    NOT_LABELLED,
    SchemaValidationError,
)


# "@0001 Ano $4. /* Ano de referência */"
LAYOUT_LINE_RE = re.compile(
    r"^\s*@\s*(\d+)\s+([A-Za-z_][A-Za-z0-9_]*)\s+(\$?)\s*(\d+)\.(\d*)"
    r"(?:\s*/\*\s*(.*?)\s*\*/)?"
)

VARIABLE_CODE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# IBGE publishes its text files in Latin-1
IBGE_ENCODING = "latin-1"


@dataclass(frozen=True)
class LayoutField:
    """
    One variable of the SAS input layout.

    Attributes:
        name: Variable code (e.g., "V2009").
        start: 1-based starting column in the fixed-width line.
        width: Number of characters.
        is_character: True for "$" fields (kept as text, possibly labelled later).
        decimals: Implied decimal places for numeric fields (SAS "w.d" informat).
        label: Comment text following the field, if any.
    """
    name: str
    start: int
    width: int
    is_character: bool
    decimals: int = 0
    label: str = ""

    @property
    def colspec(self) -> tuple[int, int]:
        """0-based, half-open column span as expected by pandas.read_fwf."""
        return (self.start - 1, self.start - 1 + self.width)


@dataclass(frozen=True)
class VariableDictionary:
    """
    Human-readable names for variables and their category codes.

    Attributes:
        variable_labels: Variable code -> question text.
        categories: Variable code -> {category code -> category name}, in the
                    order the dictionary lists them.
    """
    variable_labels: dict[str, str] = field(default_factory=dict)
    categories: dict[str, dict[int, str]] = field(default_factory=dict)

    def label_for(self, variable: str) -> str:
        """Question text for a variable, or the code itself when unknown."""
        return self.variable_labels.get(variable, variable)

    def categories_for(self, variable: str) -> dict[int, str]:
        """Category mapping for a variable (empty for numeric variables)."""
        return self.categories.get(variable, {})


def read_input_layout(path: Path | str) -> list[LayoutField]:
    """
    Parse a SAS input program into an ordered list of layout fields.

    **Functionally**:
      - Reads the file as Latin-1 text.
      - Keeps every line shaped like "@<start> <name> [$]<width>.[<decimals>]",
        with an optional trailing "/* label */" comment.
      - Ignores everything else (DATA/INFILE/INPUT/RUN statements, blank lines).

    Args:
        path: Path to the layout file (e.g., "input_PNADC_trimestral.txt").

    Returns:
        List of LayoutField in file order.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        SchemaValidationError: If no field line can be parsed, or a variable
                              name appears twice.

    Example:
        >>> fields = read_input_layout("input_PNADC_trimestral.txt")
        >>> fields[0]
        LayoutField(name='Ano', start=1, width=4, is_character=True, decimals=0, label='Ano de referência')
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Input layout file not found: {path}. "
            f"Ensure the file exists and the path is correct."
        )

    text = path.read_text(encoding=IBGE_ENCODING)

    fields: list[LayoutField] = []
    seen: set[str] = set()
    for line in text.splitlines():
        match = LAYOUT_LINE_RE.match(line)
        if not match:
            continue

        start, name, dollar, width, decimals, label = match.groups()
        if name in seen:
            raise SchemaValidationError(
                f"{path}: Variable '{name}' appears more than once in the layout."
            )
        seen.add(name)

        fields.append(LayoutField(
            name=name,
            start=int(start),
            width=int(width),
            is_character=(dollar == "$"),
            decimals=int(decimals) if decimals else 0,
            label=label or "",
        ))

    if not fields:
        raise SchemaValidationError(
            f"{path}: No '@<start> <name> <width>.' lines found. "
            f"Is this a SAS input layout file?"
        )

    return fields


def _parse_numeric_field(raw: pd.Series, decimals: int) -> pd.Series:
    """
    Convert a fixed-width numeric field to floats.

    Blank values become NaN. When the layout declares implied decimals and a
    value has no explicit decimal point, the value is scaled by 10**-decimals
    (SAS "w.d" informat semantics).
    """
    text = raw.str.strip()
    values = pd.to_numeric(text.replace("", np.nan), errors="coerce").astype(float)

    if decimals > 0:
        implied = text.notna() & ~text.str.contains(".", regex=False, na=False)
        values = values.where(~implied, values / (10 ** decimals))

    return values


def read_pnadc_microdata(
    microdata_path: Path | str,
    layout_path: Path | str,
    columns: list[str] | None = None,
) -> pd.DataFrame:
    """
    Read a fixed-width PNADC microdata file using its SAS input layout.

    **Conceptual**: The offline equivalent of downloading the survey: raw
    bytes in, a rectangular table with one column per variable out. Nothing is
    labelled yet (see label_pnadc); character codes stay as strings.

    **Functionally**:
      - Parses the layout with read_input_layout.
      - Optionally restricts to `columns` (design columns present in the
        layout are always kept, so the result can still become a design).
      - Reads with pandas.read_fwf, every field as text.
      - Character fields: stripped, blank -> missing.
      - Numeric fields: converted to float, blank -> NaN.

    Args:
        microdata_path: Path to the fixed-width file (e.g., "PNADC_032024.txt").
        layout_path: Path to the SAS input layout.
        columns: Optional subset of variable names to read.

    Returns:
        DataFrame with one row per record, columns in layout order.

    Raises:
        FileNotFoundError: If either file doesn't exist.
        SchemaValidationError: If the layout is malformed, a requested column
                              is not in the layout, or the file can't be parsed.
    """
    microdata_path = Path(microdata_path)
    context = str(microdata_path)

    if not microdata_path.exists():
        raise FileNotFoundError(
            f"Microdata file not found: {microdata_path}. "
            f"Ensure the file exists and the path is correct."
        )

    layout = read_input_layout(layout_path)

    if columns is not None:
        known = {f.name for f in layout}
        unknown = [c for c in columns if c not in known]
        if unknown:
            raise SchemaValidationError(
                f"{context}: Requested columns not in layout: {unknown}."
            )
        wanted = set(columns) | (set(DESIGN_COLUMNS) & known)
        layout = [f for f in layout if f.name in wanted]

    try:
        df = pd.read_fwf(
            microdata_path,
            colspecs=[f.colspec for f in layout],
            names=[f.name for f in layout],
            header=None,
            dtype=str,
            keep_default_na=False,
            encoding=IBGE_ENCODING,
        )
    except Exception as e:
        raise SchemaValidationError(
            f"{context}: Failed to read fixed-width file. Error: {e}"
        )

    for f in layout:
        if f.is_character:
            df[f.name] = df[f.name].str.strip().replace("", np.nan)
        else:
            df[f.name] = _parse_numeric_field(df[f.name], f.decimals)

    return df


def read_variable_dictionary(path: Path | str) -> VariableDictionary:
    """
    Read the IBGE variable dictionary.

    **Expected layout** (positional, header rows are skipped automatically):
      column 1: start position      column 5: question text
      column 2: width               column 6: category code
      column 3: variable code       column 7: category name
      column 4: question number

    The variable code only appears on the first row of each variable; the
    following category rows leave it blank, so it is forward-filled.

    Supported formats: .xls (xlrd), .xlsx (openpyxl), .csv.

    Args:
        path: Path to the dictionary file.

    Returns:
        VariableDictionary with variable labels and category mappings.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        SchemaValidationError: If the file can't be read or has fewer than 7 columns.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Dictionary file not found: {path}. "
            f"Ensure the file exists and the path is correct."
        )

    suffix = path.suffix.lower()
    try:
        if suffix == ".xls":
            raw = pd.read_excel(path, header=None, dtype=str, engine="xlrd")
        elif suffix == ".xlsx":
            raw = pd.read_excel(path, header=None, dtype=str, engine="openpyxl")
        elif suffix == ".csv":
            raw = pd.read_csv(path, header=None, dtype=str, keep_default_na=True)
        else:
            raise SchemaValidationError(
                f"{path}: Unsupported dictionary format '{suffix}'. "
                f"Expected .xls, .xlsx or .csv."
            )
    except SchemaValidationError:
        raise
    except Exception as e:
        raise SchemaValidationError(f"{path}: Failed to read dictionary. Error: {e}")

    if raw.shape[1] < 7:
        raise SchemaValidationError(
            f"{path}: Expected at least 7 columns, found {raw.shape[1]}."
        )

    raw = raw.iloc[:, :7]
    raw.columns = ["start", "width", "code", "number", "question", "category", "category_label"]
    raw["code"] = raw["code"].str.strip()

    # Variable labels come from the rows that name the variable
    named = raw[raw["code"].notna() & raw["code"].str.match(VARIABLE_CODE_RE, na=False)]
    variable_labels = {
        row.code: str(row.question).strip()
        for row in named.itertuples(index=False)
        if pd.notna(row.question)
    }

    # Category rows inherit the code of the variable above them
    raw["code"] = raw["code"].ffill()
    raw["category_code"] = pd.to_numeric(raw["category"], errors="coerce")
    coded = raw[
        raw["category_code"].notna()
        & raw["category_label"].notna()
        & raw["code"].str.match(VARIABLE_CODE_RE, na=False)
    ]

    categories: dict[str, dict[int, str]] = {}
    for row in coded.itertuples(index=False):
        if not float(row.category_code).is_integer():
            continue
        categories.setdefault(row.code, {})[int(row.category_code)] = str(row.category_label).strip()

    return VariableDictionary(variable_labels=variable_labels, categories=categories)


def label_pnadc(
    df: pd.DataFrame,
    dictionary: VariableDictionary,
    not_labelled: frozenset[str] = NOT_LABELLED,
) -> pd.DataFrame:
    """
    Replace category codes by category names.

    **Conceptual**: "V2010 = 1" means nothing to a reader; "Cor ou raça =
    Branca" does. Labelling turns every coded character column into a pandas
    Categorical whose categories follow the dictionary order, so tables and
    charts list them in the official order rather than alphabetically.

    **Functionally**:
      - Only character (object/string) columns are considered.
      - Identifier and measure columns (not_labelled) are left untouched.
      - Columns without dictionary categories are left untouched.
      - Codes not listed in the dictionary become missing.
      - Returns a new DataFrame; the input is not modified.

    Args:
        df: Table returned by read_pnadc_microdata.
        dictionary: Parsed variable dictionary.
        not_labelled: Column names that must never be labelled.

    Returns:
        New DataFrame with labelled categorical columns.
    """
    labelled = df.copy()

    for col in labelled.columns:
        if col in not_labelled:
            continue
        if not (pd.api.types.is_object_dtype(labelled[col]) or pd.api.types.is_string_dtype(labelled[col])):
            continue
        mapping = dictionary.categories_for(col)
        if not mapping:
            continue

        codes = pd.to_numeric(labelled[col], errors="coerce").astype(float)
        lookup = pd.Series(list(mapping.values()), index=pd.Index([float(k) for k in mapping], dtype=float))
        names = codes.map(lookup)

        # Dictionary order, duplicates collapsed (two codes may share a name)
        ordered_labels = list(dict.fromkeys(mapping.values()))
        labelled[col] = pd.Categorical(names, categories=ordered_labels)

    return labelled
