"""Standalone scan script for the scheduled GitHub Actions workflow.

Equivalent to the ``listingwatch-scan`` console script.
"""

import sys

from listingwatch.cli import main

if __name__ == "__main__":
    sys.exit(main())
