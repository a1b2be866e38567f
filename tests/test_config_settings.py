"""
Tests for the configuration layer.

**Purpose**: Verify that settings have sensible defaults, load from
environment variables, and fail fast on invalid values.

**Testing philosophy**: monkeypatch sets or deletes environment variables for
a single test, so nothing leaks between tests or into the developer's shell.
"""

from pathlib import Path

import pytest

from pnadc_survey.config.settings import (
    DEFAULT_IBGE_BASE_URL,
    LONELY_PSU_POLICIES,
    AnalysisSettings,
    IbgeSettings,
    Settings,
    get_settings,
    reset_settings,
)


ENV_VARS = [
    "PNADC_BASE_URL",
    "PNADC_TIMEOUT_SECONDS",
    "PNADC_DATA_DIR",
    "PNADC_RESULTS_DIR",
    "PNADC_LONELY_PSU",
    "PNADC_CONFIDENCE_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove every PNADC_* variable and reset the settings singleton.

    A developer's .env file must not change the outcome of these tests.
    """
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield monkeypatch
    reset_settings()


def test_ibge_settings_defaults():
    settings = IbgeSettings()

    assert settings.base_url == DEFAULT_IBGE_BASE_URL
    assert settings.base_url.endswith("/")
    assert settings.timeout_seconds == 120


def test_ibge_settings_rejects_url_without_trailing_slash():
    with pytest.raises(ValueError, match="must end with '/'"):
        IbgeSettings(base_url="https://example.org/microdados")


def test_ibge_settings_rejects_non_positive_timeout():
    with pytest.raises(ValueError, match="timeout_seconds"):
        IbgeSettings(timeout_seconds=0)


def test_ibge_settings_from_env(clean_env):
    clean_env.setenv("PNADC_BASE_URL", "https://mirror.example.org/pnadc/")
    clean_env.setenv("PNADC_TIMEOUT_SECONDS", "30")

    settings = IbgeSettings.from_env()

    assert settings.base_url == "https://mirror.example.org/pnadc/"
    assert settings.timeout_seconds == 30


def test_ibge_settings_from_env_rejects_non_integer_timeout(clean_env):
    clean_env.setenv("PNADC_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError, match="PNADC_TIMEOUT_SECONDS"):
        IbgeSettings.from_env()


def test_analysis_settings_defaults():
    settings = AnalysisSettings()

    assert settings.lonely_psu == "fail"
    assert settings.confidence_level == 0.95
    assert settings.data_dir.parts[-2:] == ("data", "raw")
    assert settings.results_dir.parts[-2:] == ("data", "results")


@pytest.mark.parametrize("policy", LONELY_PSU_POLICIES)
def test_analysis_settings_accepts_known_policies(policy):
    assert AnalysisSettings(lonely_psu=policy).lonely_psu == policy


def test_analysis_settings_rejects_unknown_policy():
    with pytest.raises(ValueError, match="lonely_psu"):
        AnalysisSettings(lonely_psu="average")


@pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.1])
def test_analysis_settings_rejects_confidence_outside_unit_interval(level):
    with pytest.raises(ValueError, match="confidence_level"):
        AnalysisSettings(confidence_level=level)


def test_analysis_settings_from_env(clean_env, tmp_path):
    clean_env.setenv("PNADC_DATA_DIR", str(tmp_path / "raw"))
    clean_env.setenv("PNADC_RESULTS_DIR", str(tmp_path / "out"))
    clean_env.setenv("PNADC_LONELY_PSU", "  Skip ")
    clean_env.setenv("PNADC_CONFIDENCE_LEVEL", "0.9")

    settings = AnalysisSettings.from_env()

    assert settings.data_dir == Path(tmp_path / "raw")
    assert settings.results_dir == Path(tmp_path / "out")
    assert settings.lonely_psu == "skip"
    assert settings.confidence_level == 0.9


def test_analysis_settings_from_env_rejects_bad_level(clean_env):
    clean_env.setenv("PNADC_CONFIDENCE_LEVEL", "ninety")

    with pytest.raises(ValueError, match="PNADC_CONFIDENCE_LEVEL"):
        AnalysisSettings.from_env()


def test_get_settings_is_cached_until_reset(clean_env):
    first = get_settings()
    assert get_settings() is first

    clean_env.setenv("PNADC_LONELY_PSU", "certainty")
    assert get_settings().analysis.lonely_psu == "fail"

    reset_settings()
    assert get_settings().analysis.lonely_psu == "certainty"


def test_get_settings_propagates_invalid_environment(clean_env):
    clean_env.setenv("PNADC_LONELY_PSU", "ignore")

    with pytest.raises(ValueError):
        get_settings()


def test_settings_can_be_built_without_environment():
    settings = Settings(analysis=AnalysisSettings(lonely_psu="certainty"))

    assert settings.ibge == IbgeSettings()
    assert settings.analysis.lonely_psu == "certainty"
