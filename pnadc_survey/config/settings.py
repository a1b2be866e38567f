"""
Configuration settings for the PNADC walkthrough.

**Conceptual**: This module provides strongly-typed configuration objects that
load from environment variables (via .env files). All settings are validated
at startup, ensuring fail-fast behavior if configuration is missing or invalid.

**Why centralized config?**
  - Single source of truth for all settings (IBGE URL, data folders, variance options).
  - Easy to test (inject fake settings instead of reading from environment).
  - Fail-fast validation (a typo in PNADC_LONELY_PSU → clear error at startup,
    not halfway through a variance computation).

**Teaching note**: Even a tutorial pipeline benefits from explicit configuration:
  - The same walkthrough runs against the real IBGE server, a local copy of the
    files, or a synthetic sample; only the settings change.
  - Strongly-typed config (dataclasses) prevents typos and provides IDE autocomplete.

This module uses python-dotenv to load .env files and dataclasses for type safety.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Project root is 3 levels up from pnadc_survey/config/settings.py
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Load .env from project root (dev/local environments); no-op if absent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

DEFAULT_IBGE_BASE_URL = (
    "https://ftp.ibge.gov.br/Trabalho_e_Rendimento/"
    "Pesquisa_Nacional_por_Amostra_de_Domicilios_continua/Trimestral/Microdados/"
)

# Policies for strata that contain a single PSU (see survey/design.py)
LONELY_PSU_POLICIES = ("fail", "certainty", "skip")


@dataclass(frozen=True)
class IbgeSettings:
    """
    Configuration for the IBGE microdata server.

    **Conceptual**: IBGE (Instituto Brasileiro de Geografia e Estatística)
    publishes the PNAD Contínua quarterly microdata as zip archives on a public
    FTP mirror that is also reachable over HTTPS. No API key is needed; the
    settings only describe where the files live and how patient we are.

    Attributes:
        base_url: Root of the quarterly microdata tree. Must end with "/".
        timeout_seconds: HTTP timeout in seconds (default 120). Quarter archives
                        are large (~150 MB), so this is a per-read timeout,
                        not a whole-download limit.
        user_agent: User-Agent header sent with every request.
    """
    base_url: str = DEFAULT_IBGE_BASE_URL
    timeout_seconds: int = 120
    user_agent: str = "pnadc_survey/1.0"

    def __post_init__(self):
        """Validate settings after initialization."""
        if not self.base_url:
            raise ValueError(
                "PNADC_BASE_URL is required but empty. "
                "Unset it to use the default IBGE server."
            )
        if not self.base_url.endswith("/"):
            raise ValueError(
                f"PNADC_BASE_URL must end with '/', got: {self.base_url}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be positive, got: {self.timeout_seconds}"
            )

    @classmethod
    def from_env(cls) -> "IbgeSettings":
        """
        Load IBGE settings from environment variables.

        **Environment variables**:
          - PNADC_BASE_URL (optional): Root URL of the microdata tree.
          - PNADC_TIMEOUT_SECONDS (optional): HTTP timeout. Defaults to 120.

        Returns:
            IbgeSettings object with values loaded from environment.

        Raises:
            ValueError: If PNADC_TIMEOUT_SECONDS is not an integer or the URL is invalid.
        """
        base_url = os.getenv("PNADC_BASE_URL", DEFAULT_IBGE_BASE_URL)
        timeout_str = os.getenv("PNADC_TIMEOUT_SECONDS", "120")

        try:
            timeout_seconds = int(timeout_str)
        except ValueError:
            raise ValueError(
                f"PNADC_TIMEOUT_SECONDS must be an integer, got: {timeout_str}"
            )

        return cls(base_url=base_url, timeout_seconds=timeout_seconds)


@dataclass(frozen=True)
class AnalysisSettings:
    """
    Configuration for local folders and estimation options.

    **Conceptual**: Where raw files are cached, where tables/charts are written,
    and how the variance estimator treats awkward designs.

    **Lonely PSU policy**: A stratum with a single primary sampling unit has no
    within-stratum variability to measure, so the usual variance formula
    divides by zero. The policy decides what happens:
      - "fail": raise LonelyPsuError (default, forces you to notice).
      - "certainty": the lonely PSU is treated as selected with certainty.
      - "skip": the stratum is left out of the variance.
    "certainty" and "skip" map to samplics' SinglePSUEst rules of the same name.

    Attributes:
        data_dir: Folder holding downloaded raw files (default: data/raw).
        results_dir: Folder for CSV tables and PNG charts (default: data/results).
        lonely_psu: One of LONELY_PSU_POLICIES.
        confidence_level: Level of the confidence intervals and Woodruff
                          quantile intervals the walkthrough reports (default 0.95).
    """
    data_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "raw")
    results_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "data" / "results")
    lonely_psu: str = "fail"
    confidence_level: float = 0.95

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.lonely_psu not in LONELY_PSU_POLICIES:
            raise ValueError(
                f"lonely_psu must be one of {LONELY_PSU_POLICIES}, got: {self.lonely_psu}"
            )
        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError(
                f"confidence_level must be in (0, 1), got: {self.confidence_level}"
            )

    @classmethod
    def from_env(cls) -> "AnalysisSettings":
        """
        Load analysis settings from environment variables.

        **Environment variables** (all optional):
          - PNADC_DATA_DIR: raw data folder.
          - PNADC_RESULTS_DIR: output folder.
          - PNADC_LONELY_PSU: "fail", "certainty" or "skip".
          - PNADC_CONFIDENCE_LEVEL: e.g. "0.95".

        Raises:
            ValueError: If any value is malformed.
        """
        data_dir = Path(os.getenv("PNADC_DATA_DIR", str(PROJECT_ROOT / "data" / "raw")))
        results_dir = Path(os.getenv("PNADC_RESULTS_DIR", str(PROJECT_ROOT / "data" / "results")))
        lonely_psu = os.getenv("PNADC_LONELY_PSU", "fail").strip().lower()
        level_str = os.getenv("PNADC_CONFIDENCE_LEVEL", "0.95")

        try:
            confidence_level = float(level_str)
        except ValueError:
            raise ValueError(
                f"PNADC_CONFIDENCE_LEVEL must be a number, got: {level_str}"
            )

        return cls(
            data_dir=data_dir,
            results_dir=results_dir,
            lonely_psu=lonely_psu,
            confidence_level=confidence_level,
        )


@dataclass(frozen=True)
class Settings:
    """
    Global settings for the walkthrough.

    **Usage pattern**:
      ```python
      from pnadc_survey.config.settings import get_settings

      settings = get_settings()
      settings.ibge.base_url
      settings.analysis.lonely_psu
      ```

    Attributes:
        ibge: IBGE server settings.
        analysis: Folder and estimation settings.
    """
    ibge: IbgeSettings = field(default_factory=IbgeSettings)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load every subsystem's settings from the environment."""
        return cls(
            ibge=IbgeSettings.from_env(),
            analysis=AnalysisSettings.from_env(),
        )


_default_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings singleton.

    Settings are loaded from environment on first call, then cached for reuse.
    Tests can bypass this by building their own Settings objects, or call
    reset_settings() after changing environment variables.

    Returns:
        Global Settings singleton.

    Raises:
        ValueError: If any environment variable holds an invalid value.
    """
    global _default_settings

    if _default_settings is None:
        _default_settings = Settings.from_env()

    return _default_settings


def reset_settings():
    """Reset the global settings singleton (for testing)."""
    global _default_settings
    _default_settings = None
