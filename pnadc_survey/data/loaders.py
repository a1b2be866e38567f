"""
One-call loaders for a PNADC quarter, offline or online.

**Conceptual**: This module provides the two entry points a walkthrough
needs, without hardcoding paths in analysis code:
  - load_pnadc_offline: files already on disk (microdata + layout + dictionary).
  - fetch_pnadc: year and quarter, downloaded from IBGE on demand.

Both return either the labelled table or, with design=True, a ready-to-use
SurveyDesign. They are thin wrappers around data/io.py, the IBGE provider and
survey/design.py.

**Teaching note**: Loading and design construction go together on purpose.
The design must be built from the *full* quarter before any filtering, and
returning it from the loader makes that the path of least resistance.
"""

from pathlib import Path
from typing import Optional, Union

import pandas as pd

from pnadc_survey.config.settings import Settings, get_settings
from pnadc_survey.data.io import label_pnadc, read_pnadc_microdata, read_variable_dictionary
from pnadc_survey.ibge.base import MicrodataProvider
from pnadc_survey.ibge.data_provider import IbgeDataProvider
from pnadc_survey.survey.design import SurveyDesign, pnadc_design


def load_pnadc_offline(
    microdata_path: Path | str,
    layout_path: Path | str,
    dictionary_path: Path | str | None = None,
    columns: list[str] | None = None,
    design: bool = True,
    lonely_psu: str | None = None,
) -> Union[pd.DataFrame, SurveyDesign]:
    """
    Load a quarter from local files.

    **Functionally**:
      - Reads the fixed-width file with its SAS layout.
      - Applies dictionary labels when dictionary_path is given.
      - Builds the PNADC design when design=True.

    Args:
        microdata_path: Fixed-width microdata file.
        layout_path: SAS input layout.
        dictionary_path: Optional variable dictionary (.xls/.xlsx/.csv).
        columns: Optional subset of variables (design columns always kept).
        design: Return a SurveyDesign instead of the table.
        lonely_psu: Single-PSU policy (default: settings.analysis.lonely_psu).

    Returns:
        Labelled DataFrame, or SurveyDesign when design=True.

    Raises:
        FileNotFoundError: If a file is missing.
        SchemaValidationError: If a file is malformed or design columns are invalid.

    Example:
        >>> design = load_pnadc_offline(
        ...     "data/raw/PNADC_032024.txt",
        ...     "data/raw/input_PNADC_trimestral.txt",
        ...     "data/raw/dicionario_PNADC_microdados_trimestral.xls",
        ... )
    """
    df = read_pnadc_microdata(microdata_path, layout_path, columns=columns)

    if dictionary_path is not None:
        df = label_pnadc(df, read_variable_dictionary(dictionary_path))

    if not design:
        return df

    policy = lonely_psu if lonely_psu is not None else get_settings().analysis.lonely_psu
    return pnadc_design(df, lonely_psu=policy)


def fetch_pnadc(
    year: int,
    quarter: int,
    columns: list[str] | None = None,
    labels: bool = True,
    design: bool = True,
    settings: Optional[Settings] = None,
    provider: Optional[MicrodataProvider] = None,
) -> Union[pd.DataFrame, SurveyDesign]:
    """
    Fetch a quarter from IBGE (or any MicrodataProvider).

    Args:
        year: Reference year (>= 2012).
        quarter: Reference quarter (1..4).
        columns: Optional subset of variables (design columns always kept).
        labels: Apply dictionary labels.
        design: Return a SurveyDesign instead of the table.
        settings: Settings to use (default: get_settings()).
        provider: Data source (default: IbgeDataProvider on settings.analysis.data_dir).

    Returns:
        Labelled DataFrame, or SurveyDesign when design=True.

    Raises:
        ValueError: If the period is invalid.
        IbgeClientError: On network failures.
        SchemaValidationError: If the downloaded files are malformed.

    Example:
        >>> design = fetch_pnadc(2024, 3, columns=["UF", "V2007", "V2010", "VD4016"])
    """
    settings = settings if settings is not None else get_settings()

    if provider is None:
        with IbgeDataProvider(settings.ibge, settings.analysis.data_dir) as ibge:
            df = ibge.fetch_quarter(year, quarter, columns=columns, labels=labels)
    else:
        df = provider.fetch_quarter(year, quarter, columns=columns, labels=labels)

    if not design:
        return df

    return pnadc_design(df, lonely_psu=settings.analysis.lonely_psu)
