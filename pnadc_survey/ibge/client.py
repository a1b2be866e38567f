"""
HTTP client for the IBGE microdata server.

**Conceptual**: IBGE publishes the PNAD Contínua quarterly microdata as plain
directory listings on ftp.ibge.gov.br (also served over HTTPS):

    .../Trimestral/Microdados/
        2024/
            PNADC_012024.zip
            PNADC_022024_20240815.zip      <- revised release
            ...
        Documentacao/
            Dicionario_e_input_20221031.zip

This module provides a thin wrapper around those listings: find the right file
name for a period, and stream it to disk. It does NOT unzip or parse anything;
that's IbgeDataProvider's job.

**Why separate HTTP client from DataProvider?**
  - Testability: HTTP responses can be mocked without touching zip or
    fixed-width parsing.
  - Debugging: listing/download failures surface with the exact URL involved.

**Revisions**: IBGE sometimes republishes a quarter with a date suffix
(PNADC_022024_20240815.zip). The latest suffix wins; an unsuffixed archive is
the oldest release.
"""

import re
from pathlib import Path

import requests

from pnadc_survey.config.settings import IbgeSettings


PNADC_ZIP_RE = re.compile(r"^PNADC_(0[1-4])(\d{4})(?:_(\d{8}))?\.zip$", re.IGNORECASE)
DOCUMENTATION_ZIP_RE = re.compile(r"^Dicionario_e_input(?:_(\d{8}))?\.zip$", re.IGNORECASE)
HREF_RE = re.compile(r'href="([^"]+)"', re.IGNORECASE)

DOCUMENTATION_DIR = "Documentacao/"

# First quarter of the PNAD Contínua
FIRST_YEAR = 2012


class IbgeClientError(Exception):
    """
    Base exception for IBGE server errors.

    Catch IbgeClientError to handle every IBGE-related failure, or a subclass
    for fine-grained handling.
    """
    pass


class IbgeNotFoundError(IbgeClientError):
    """
    Raised when a listing or file does not exist (404), or when no archive is
    published for the requested period.

    **Recovery**: Check the year/quarter. The most recent quarter is usually
    published about two months after it ends.
    """
    pass


class IbgeServerError(IbgeClientError):
    """
    Raised when the IBGE server returns a 5xx error.

    **Recovery**: Try again later; the mirror is occasionally under maintenance.
    """
    pass


def validate_period(year: int, quarter: int) -> None:
    """
    Validate a PNADC reference period.

    Raises:
        ValueError: If year < 2012 or quarter is not 1..4.
    """
    if not isinstance(year, int) or year < FIRST_YEAR:
        raise ValueError(f"year must be an integer >= {FIRST_YEAR}, got: {year}")
    if not isinstance(quarter, int) or not 1 <= quarter <= 4:
        raise ValueError(f"quarter must be an integer in 1..4, got: {quarter}")


def parse_archive_name(name: str) -> tuple[int, int, str] | None:
    """
    Split a quarter archive name into (year, quarter, revision).

    Returns None when the name is not a quarter archive. revision is "" for
    the original release.

    Example:
        >>> parse_archive_name("PNADC_022024_20240815.zip")
        (2024, 2, '20240815')
    """
    match = PNADC_ZIP_RE.match(name)
    if not match:
        return None
    return int(match.group(2)), int(match.group(1)), match.group(3) or ""


def extract_relative_hrefs(html: str) -> list[str]:
    """Relative link targets of a directory listing (no parent, query or absolute links)."""
    entries = []
    for href in HREF_RE.findall(html):
        h = href.strip()
        if not h or h.startswith("?") or h.startswith("/") or ":" in h:
            continue
        entries.append(h)
    return entries


class IbgeClient:
    """
    Thin HTTP client for the IBGE microdata tree.

    **Responsibilities**:
      - List directory entries.
      - Find the latest archive for a period and the latest documentation.
      - Stream files to disk.
      - Translate HTTP failures into IbgeClientError subclasses.

    **Example usage**:
        >>> from pnadc_survey.config.settings import get_settings
        >>> with IbgeClient(get_settings().ibge) as client:
        ...     name = client.find_quarter_archive(2024, 3)
        ...     client.download(f"2024/{name}", Path("data/raw") / name)
    """

    def __init__(self, settings: IbgeSettings):
        """
        Initialize the client with server settings.

        Args:
            settings: IBGE configuration (base_url, timeout_seconds, user_agent).
        """
        self.settings = settings
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": self.settings.user_agent})

    def _url(self, relative_path: str) -> str:
        return f"{self.settings.base_url}{relative_path.lstrip('/')}"

    def _get(self, relative_path: str, stream: bool = False) -> requests.Response:
        """
        GET a path below base_url and map HTTP failures to exceptions.

        Raises:
            IbgeNotFoundError: 404.
            IbgeServerError: 5xx.
            IbgeClientError: Other non-2xx statuses and connection failures.
            requests.Timeout: If the server does not answer in time.
        """
        url = self._url(relative_path)

        try:
            response = self.session.get(
                url,
                timeout=self.settings.timeout_seconds,
                stream=stream,
            )
        except requests.Timeout as e:
            raise requests.Timeout(
                f"Request to {url} timed out after {self.settings.timeout_seconds}s. "
                f"Check network connection or increase PNADC_TIMEOUT_SECONDS."
            ) from e
        except requests.ConnectionError as e:
            raise IbgeClientError(
                f"Failed to connect to {url}. Check network connection and PNADC_BASE_URL."
            ) from e
        except requests.RequestException as e:
            raise IbgeClientError(f"HTTP request to {url} failed: {e}") from e

        if response.status_code == 404:
            raise IbgeNotFoundError(f"Not found on IBGE server: {url}")

        if response.status_code >= 500:
            raise IbgeServerError(
                f"IBGE server error (status {response.status_code}) for {url}."
            )

        if not 200 <= response.status_code < 300:
            raise IbgeClientError(
                f"Unexpected status {response.status_code} for {url}."
            )

        return response

    def list_directory(self, relative_path: str = "") -> list[str]:
        """
        Entries of a directory listing, in page order.

        Args:
            relative_path: Directory below base_url (e.g., "2024/").

        Returns:
            Relative names (sub-directories keep their trailing "/").
        """
        response = self._get(relative_path)
        return extract_relative_hrefs(response.text)

    def find_quarter_archive(self, year: int, quarter: int) -> str:
        """
        Name of the latest published archive for a quarter.

        Args:
            year: Reference year (>= 2012).
            quarter: Reference quarter (1..4).

        Returns:
            Archive name (e.g., "PNADC_032024.zip").

        Raises:
            ValueError: If the period is invalid.
            IbgeNotFoundError: If the year folder or the quarter archive is missing.
        """
        validate_period(year, quarter)

        best: tuple[str, str] | None = None
        for name in self.list_directory(f"{year}/"):
            parsed = parse_archive_name(name)
            if parsed is None or parsed[0] != year or parsed[1] != quarter:
                continue
            if best is None or parsed[2] > best[0]:
                best = (parsed[2], name)

        if best is None:
            raise IbgeNotFoundError(
                f"No PNADC archive published for {year} Q{quarter} under {self._url(f'{year}/')}"
            )
        return best[1]

    def find_documentation_archive(self) -> str:
        """
        Name of the latest documentation archive (layout + dictionary).

        Raises:
            IbgeNotFoundError: If no "Dicionario_e_input*.zip" is listed.
        """
        candidates = []
        for name in self.list_directory(DOCUMENTATION_DIR):
            match = DOCUMENTATION_ZIP_RE.match(name)
            if match:
                candidates.append((match.group(1) or "", name))

        if not candidates:
            raise IbgeNotFoundError(
                f"No documentation archive found under {self._url(DOCUMENTATION_DIR)}"
            )
        return max(candidates)[1]

    def download(self, relative_path: str, destination: Path | str, chunk_size: int = 1 << 20) -> Path:
        """
        Stream a file to disk.

        The file is written to "<destination>.part" and renamed when complete,
        so an interrupted download never leaves a truncated archive behind.

        Returns:
            Path of the written file.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        response = self._get(relative_path, stream=True)
        try:
            with partial.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if chunk:
                        fh.write(chunk)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise IbgeClientError(f"Download of {self._url(relative_path)} failed: {e}") from e
        finally:
            response.close()

        partial.replace(destination)
        return destination

    def close(self):
        """Close the HTTP session and release resources."""
        self.session.close()

    def __enter__(self):
        """Enable context manager support (with statement)."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Clean up session when exiting context manager."""
        self.close()
        return False  # Don't suppress exceptions
