"""
Tests for IbgeDataProvider (download, unzip, parse and label).

**Testing philosophy**: A fake client stands in for IbgeClient. Its
download() "fetches" zip archives built from the tiny quarter in
tests/conftest.py, so the whole pipeline runs offline.
"""

import zipfile
from pathlib import Path

import pandas as pd
import pytest

from conftest import DICTIONARY_ROWS, write_pnadc_files
from pnadc_survey.config.settings import IbgeSettings
from pnadc_survey.ibge.client import IbgeNotFoundError
from pnadc_survey.ibge.data_provider import (
    LAYOUT_MEMBER_RE,
    MICRODATA_MEMBER_RE,
    IbgeDataProvider,
    IbgeDataProviderError,
    extract_member,
)


ARCHIVE_NAME = "PNADC_032024_20241120.zip"
DOCS_NAME = "Dicionario_e_input_20221031.zip"


class FakeIbgeClient:
    """
    Offline stand-in for IbgeClient.

    Serves two zip archives built in `source_dir` and records every download.
    """

    def __init__(self, source_dir: Path):
        files = write_pnadc_files(source_dir / "files")

        dictionary = source_dir / "files" / "dicionario_PNADC_microdados_trimestral.xlsx"
        pd.DataFrame(DICTIONARY_ROWS).to_excel(dictionary, header=False, index=False)

        self.archives = {
            f"2024/{ARCHIVE_NAME}": source_dir / ARCHIVE_NAME,
            f"Documentacao/{DOCS_NAME}": source_dir / DOCS_NAME,
        }
        with zipfile.ZipFile(self.archives[f"2024/{ARCHIVE_NAME}"], "w") as archive:
            archive.write(files.microdata, "PNADC_032024/PNADC_032024.txt")
        with zipfile.ZipFile(self.archives[f"Documentacao/{DOCS_NAME}"], "w") as archive:
            archive.writestr("Dicionario_e_input/", "")
            archive.write(files.layout, "Dicionario_e_input/input_PNADC_trimestral.txt")
            archive.write(dictionary, "Dicionario_e_input/dicionario_PNADC_microdados_trimestral.xlsx")

        self.downloads = []
        self.closed = False

    def find_quarter_archive(self, year, quarter):
        if (year, quarter) != (2024, 3):
            raise IbgeNotFoundError(f"No PNADC archive published for {year} Q{quarter}")
        return ARCHIVE_NAME

    def find_documentation_archive(self):
        return DOCS_NAME

    def download(self, relative_path, destination):
        self.downloads.append(relative_path)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.archives[relative_path].read_bytes())
        return destination

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client(tmp_path):
    return FakeIbgeClient(tmp_path / "server")


@pytest.fixture
def provider(fake_client, tmp_path):
    return IbgeDataProvider(IbgeSettings(), tmp_path / "data", client=fake_client)


def test_download_quarter_extracts_flat_files(provider, tmp_path):
    files = provider.download_quarter(2024, 3)

    data_dir = tmp_path / "data"
    assert files.microdata == data_dir / "PNADC_032024.txt"
    assert files.layout == data_dir / "input_PNADC_trimestral.txt"
    assert files.dictionary == data_dir / "dicionario_PNADC_microdados_trimestral.xlsx"
    assert all(p.exists() for p in (files.microdata, files.layout, files.dictionary))


def test_download_quarter_uses_cached_archives(provider, fake_client):
    provider.download_quarter(2024, 3)
    provider.download_quarter(2024, 3)

    assert fake_client.downloads == [f"2024/{ARCHIVE_NAME}", f"Documentacao/{DOCS_NAME}"]

    provider.download_quarter(2024, 3, force=True)
    assert len(fake_client.downloads) == 4


def test_download_quarter_validates_period(provider, fake_client):
    with pytest.raises(ValueError, match="quarter"):
        provider.download_quarter(2024, 5)
    assert fake_client.downloads == []


def test_download_quarter_not_published(provider):
    with pytest.raises(IbgeNotFoundError):
        provider.download_quarter(2024, 4)


def test_fetch_quarter_returns_labelled_table(provider):
    df = provider.fetch_quarter(2024, 3, columns=["UF", "V2010"])

    assert len(df) == 4
    assert df["UF"].iloc[0] == "Rio Grande do Sul"
    assert df["V2010"].iloc[2] == "Parda"
    # Design columns come along even when not requested
    assert {"UPA", "Estrato", "V1027", "V1028"}.issubset(df.columns)


def test_fetch_quarter_without_labels(provider):
    df = provider.fetch_quarter(2024, 3, labels=False)

    assert df["UF"].iloc[0] == "43"


def test_context_manager_closes_client(fake_client, tmp_path):
    with IbgeDataProvider(IbgeSettings(), tmp_path / "data", client=fake_client):
        pass

    assert fake_client.closed


def test_extract_member_corrupt_archive(tmp_path):
    broken = tmp_path / "broken.zip"
    broken.write_bytes(b"not a zip file")

    with pytest.raises(IbgeDataProviderError, match="Corrupt archive"):
        extract_member(broken, MICRODATA_MEMBER_RE, tmp_path / "out")


def test_extract_member_without_match(tmp_path):
    archive_path = tmp_path / "docs.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("Deflatores/deflator.xls", b"")

    with pytest.raises(IbgeDataProviderError, match="No member matching"):
        extract_member(archive_path, LAYOUT_MEMBER_RE, tmp_path / "out")
