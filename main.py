"""
pnadc_survey – Main entry point.

Minimal bootstrap script to verify the project structure and configuration
are in place.
"""

from pnadc_survey import __version__
from pnadc_survey.config.settings import get_settings


def main() -> None:
    """Print a bootstrap confirmation message with the active settings."""
    settings = get_settings()
    print(f"pnadc_survey {__version__} bootstrap complete")
    print(f"  IBGE server: {settings.ibge.base_url}")
    print(f"  Data folder: {settings.analysis.data_dir}")
    print(f"  Lonely PSU policy: {settings.analysis.lonely_psu}")


if __name__ == "__main__":
    main()
