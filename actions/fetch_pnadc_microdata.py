#!/usr/bin/env python3
"""
Download a PNADC quarter from IBGE and extract it into data/raw/.

**Purpose**: This script populates data/raw/ with everything the offline
walkthrough needs for one quarter:
  - PNADC_0QYYYY.txt (fixed-width microdata)
  - input_PNADC_trimestral.txt (SAS layout)
  - dicionario_PNADC_microdados_trimestral.xls (variable dictionary)

**Usage**:
    python actions/fetch_pnadc_microdata.py --year 2024 --quarter 3
    python actions/fetch_pnadc_microdata.py --year 2024 --quarter 3 --force

**What this script does**:
  1. Parse command line arguments (year, quarter, output folder)
  2. Load IBGE settings from environment (.env file, optional)
  3. Find the latest archive for the quarter and the latest documentation
  4. Download both (skipped when already on disk, unless --force)
  5. Extract microdata, layout and dictionary; print their paths

**Requirements**:
  - Network access to ftp.ibge.gov.br
  - ~1 GB free disk space (archive + extracted text)

**Example output**:
    $ python actions/fetch_pnadc_microdata.py --year 2024 --quarter 3
    Loading settings from environment...
    Fetching PNADC 2024 Q3 into data/raw
      ✓ Microdata:  data/raw/PNADC_032024.txt
      ✓ Layout:     data/raw/input_PNADC_trimestral.txt
      ✓ Dictionary: data/raw/dicionario_PNADC_microdados_trimestral.xls
    Done!
"""

import argparse
import sys
from pathlib import Path

# Add project root to Python path so we can import pnadc_survey modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pnadc_survey.config.settings import get_settings
from pnadc_survey.ibge.client import IbgeClientError, IbgeNotFoundError, IbgeServerError
from pnadc_survey.ibge.data_provider import IbgeDataProvider, IbgeDataProviderError


def parse_args(argv=None):
    """
    Parse command line arguments.

    Returns:
        Namespace with attributes: year (int), quarter (int), output_dir (str | None), force (bool)
    """
    parser = argparse.ArgumentParser(
        description="Download and extract PNAD Contínua quarterly microdata from IBGE",
        epilog="""
Examples:
  # Third quarter of 2024 into data/raw/
  python actions/fetch_pnadc_microdata.py --year 2024 --quarter 3

  # Download again even if the archives are already on disk
  python actions/fetch_pnadc_microdata.py --year 2024 --quarter 3 --force
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--year", type=int, required=True, help="Reference year (>= 2012)")
    parser.add_argument("--quarter", type=int, required=True, choices=[1, 2, 3, 4], help="Reference quarter")
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Destination folder (default: PNADC_DATA_DIR or data/raw)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Download again even if the archives already exist",
    )

    return parser.parse_args(argv)


def main(argv=None):
    """
    Main entry point for the script.

    **Exit codes**:
      - 0: Success
      - 1: Configuration error (invalid settings or period)
      - 2: Fatal error (network, server, corrupt archive)
    """
    args = parse_args(argv)

    print("Loading settings from environment...")
    try:
        settings = get_settings()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    output_dir = Path(args.output_dir) if args.output_dir else settings.analysis.data_dir
    print(f"Fetching PNADC {args.year} Q{args.quarter} into {output_dir}")

    try:
        with IbgeDataProvider(settings.ibge, output_dir) as provider:
            files = provider.download_quarter(args.year, args.quarter, force=args.force)

    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    except IbgeNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("The quarter may not be published yet.", file=sys.stderr)
        sys.exit(2)

    except IbgeServerError as e:
        print(f"ERROR: IBGE server error: {e}", file=sys.stderr)
        sys.exit(2)

    except (IbgeClientError, IbgeDataProviderError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    except KeyboardInterrupt:
        print("\nInterrupted by user. Exiting...")
        sys.exit(130)

    except Exception as e:
        print(f"ERROR: Fatal error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(2)

    print(f"  ✓ Microdata:  {files.microdata}")
    print(f"  ✓ Layout:     {files.layout}")
    print(f"  ✓ Dictionary: {files.dictionary}")
    print("Done!")
    sys.exit(0)


if __name__ == "__main__":
    main()
