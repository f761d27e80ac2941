"""Launcher wrapper to keep top-level script while code lives in package.
"""

import sys

# Load .env before reading configuration (so TRACE_SYMBOL_CACHE etc. are set)
from dotenv import load_dotenv
load_dotenv()


def main():
    from trace_symbolicator.cli import main as _package_main
    sys.exit(_package_main())


if __name__ == "__main__":
    main()
