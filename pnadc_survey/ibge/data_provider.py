"""
IBGE data provider: download, unzip, parse and label a PNADC quarter.

**Conceptual**: This module implements the MicrodataProvider protocol on top
of IbgeClient. It bridges between the IBGE server (zip archives of
fixed-width text plus a documentation archive) and the application (a
labelled pandas DataFrame).

**Layered architecture**:
  1. IbgeClient: HTTP layer, finds and streams files.
  2. IbgeDataProvider (this file): adapter layer, unzips the archives and
     hands the extracted files to the readers in data/io.py.
  3. Design builder and estimators: use the labelled table.

**Caching**: Archives are kept under data_dir. A quarter already on disk is
not downloaded again unless force=True, so each file is fetched from IBGE
at most once.
"""

import re
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from pnadc_survey.config.settings import IbgeSettings
from pnadc_survey.data.io import label_pnadc, read_pnadc_microdata, read_variable_dictionary
from pnadc_survey.ibge.client import DOCUMENTATION_DIR, IbgeClient, validate_period


MICRODATA_MEMBER_RE = re.compile(r"^PNADC_0[1-4]\d{4}.*\.txt$", re.IGNORECASE)
LAYOUT_MEMBER_RE = re.compile(r"^input_PNADC_trimestral.*\.txt$", re.IGNORECASE)
DICTIONARY_MEMBER_RE = re.compile(r"^dicionario_PNADC_microdados_trimestral.*\.xlsx?$", re.IGNORECASE)


class IbgeDataProviderError(Exception):
    """
    Raised when a downloaded archive is unreadable or lacks an expected file.

    Separate from IbgeClientError: the HTTP transfer worked, but the content
    is not what a PNADC release should contain.
    """
    pass


@dataclass(frozen=True)
class PnadcFiles:
    """
    Local paths of one quarter's extracted files.

    Attributes:
        microdata: Fixed-width microdata (PNADC_0QYYYY.txt).
        layout: SAS input layout (input_PNADC_trimestral.txt).
        dictionary: Variable dictionary (.xls/.xlsx).
    """
    microdata: Path
    layout: Path
    dictionary: Path


def extract_member(zip_path: Path, pattern: re.Pattern, output_dir: Path) -> Path:
    """
    Extract the first archive member whose file name matches `pattern`.

    Folder names inside the archive are dropped; the member lands directly in
    output_dir.

    Returns:
        Path of the extracted file.

    Raises:
        IbgeDataProviderError: If the archive is corrupt or has no matching member.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(zip_path) as archive:
            for info in archive.infolist():
                name = Path(info.filename).name
                if info.is_dir() or not pattern.match(name):
                    continue
                target = output_dir / name
                with archive.open(info) as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
                return target
    except zipfile.BadZipFile as e:
        raise IbgeDataProviderError(f"Corrupt archive {zip_path}: {e}") from e

    raise IbgeDataProviderError(
        f"No member matching '{pattern.pattern}' in {zip_path}"
    )


class IbgeDataProvider:
    """
    MicrodataProvider backed by the IBGE server.

    **Data pipeline**:
      1. Find the latest archive for the quarter and the latest documentation.
      2. Download both into data_dir (skipped when already present).
      3. Extract microdata, layout and dictionary.
      4. Parse with read_pnadc_microdata and label with label_pnadc.

    **Why inject the client?** Tests pass a fake client that "downloads" small
    local archives, so the whole pipeline runs without network access.
    """

    def __init__(
        self,
        settings: IbgeSettings,
        data_dir: Path | str,
        client: Optional[IbgeClient] = None,
    ):
        """
        Args:
            settings: IBGE server settings.
            data_dir: Folder for archives and extracted files.
            client: Optional pre-built client (defaults to IbgeClient(settings)).
        """
        self.settings = settings
        self.data_dir = Path(data_dir)
        self.client = client if client is not None else IbgeClient(settings)

    def _ensure_downloaded(self, relative_path: str, destination: Path, force: bool) -> Path:
        if destination.exists() and not force:
            return destination
        return self.client.download(relative_path, destination)

    def download_quarter(self, year: int, quarter: int, force: bool = False) -> PnadcFiles:
        """
        Download (if needed) and extract one quarter plus its documentation.

        Args:
            year: Reference year (>= 2012).
            quarter: Reference quarter (1..4).
            force: Download again even if the archives are on disk.

        Returns:
            PnadcFiles with the extracted paths.

        Raises:
            ValueError: If the period is invalid.
            IbgeClientError: On listing/download failures.
            IbgeDataProviderError: If an archive lacks an expected file.
        """
        validate_period(year, quarter)

        archive_name = self.client.find_quarter_archive(year, quarter)
        archive_path = self._ensure_downloaded(
            f"{year}/{archive_name}", self.data_dir / archive_name, force
        )

        docs_name = self.client.find_documentation_archive()
        docs_path = self._ensure_downloaded(
            f"{DOCUMENTATION_DIR}{docs_name}", self.data_dir / docs_name, force
        )

        return PnadcFiles(
            microdata=extract_member(archive_path, MICRODATA_MEMBER_RE, self.data_dir),
            layout=extract_member(docs_path, LAYOUT_MEMBER_RE, self.data_dir),
            dictionary=extract_member(docs_path, DICTIONARY_MEMBER_RE, self.data_dir),
        )

    def fetch_quarter(
        self,
        year: int,
        quarter: int,
        columns: list[str] | None = None,
        labels: bool = True,
    ) -> pd.DataFrame:
        """
        Fetch one quarter as a labelled table (see MicrodataProvider).
        """
        files = self.download_quarter(year, quarter)
        df = read_pnadc_microdata(files.microdata, files.layout, columns=columns)

        if labels:
            dictionary = read_variable_dictionary(files.dictionary)
            df = label_pnadc(df, dictionary)

        return df

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()

    def __enter__(self):
        """Enable context manager support (with statement)."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Clean up client when exiting context manager."""
        self.close()
        return False
