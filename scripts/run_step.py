"""
Script to run one batch step from the command line

Usage:
    python scripts/run_step.py cursor -p time=1700000000000
    python scripts/run_step.py flat-file --fresh
    python scripts/run_step.py --list
"""

import sys

from batch.cli import main


if __name__ == "__main__":
    sys.exit(main())
