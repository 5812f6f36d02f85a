"""Entry point for running ``vz`` from a source checkout."""

import sys

from vizier.cli import main

if __name__ == "__main__":
    sys.exit(main())
