"""
Base abstraction for PNADC microdata sources.

**Conceptual**: The walkthrough does not care *where* a quarter comes from:
the IBGE server, a folder of previously downloaded files, or a test double.
MicrodataProvider is the structural interface every source satisfies, so
loaders can accept any of them.

**Why protocols over inheritance?**
  - Any class with a matching fetch_quarter() is a provider, no base class needed.
  - Test doubles are one small class, not a mock hierarchy.

**Data guarantees**: Every provider returns a table as produced by
label_pnadc: one row per person, IBGE variable codes as column names,
numeric measures as floats, coded variables as labelled categoricals, and the
design columns (UPA, Estrato, V1027/V1028/V1029, posest) whenever the source
has them.
"""

from typing import Protocol

import pandas as pd


class MicrodataProvider(Protocol):
    """
    Protocol for fetching one quarter of PNADC microdata.

    **Example usage**:
        >>> from pnadc_survey.ibge.data_provider import IbgeDataProvider
        >>> settings = get_settings()
        >>> provider = IbgeDataProvider(settings.ibge, settings.analysis.data_dir)
        >>> df = provider.fetch_quarter(2024, 3, columns=["UF", "V2010", "VD4016"])
    """

    def fetch_quarter(
        self,
        year: int,
        quarter: int,
        columns: list[str] | None = None,
        labels: bool = True,
    ) -> pd.DataFrame:
        """
        Fetch one quarter as a (labelled) table.

        Args:
            year: Reference year (>= 2012).
            quarter: Reference quarter (1..4).
            columns: Optional subset of variables; design columns are always kept.
            labels: Apply the dictionary's category labels.

        Returns:
            Person-level DataFrame.

        Raises:
            ValueError: If the period is invalid.
        """
        ...
