#!/usr/bin/env python3
"""Snaplog ETL Pipeline Runner.

Usage:
    python scripts/run_etl_pipeline.py --input-dir /data/ndt/2017/05/09
    python scripts/run_etl_pipeline.py --config scripts/user_config.py
    python scripts/run_etl_pipeline.py --config scripts/user_config.py --mode watch --max-runtime 60

Note: User config in scripts/user_config.py, expert defaults in
snaplog_etl/schemas/param.py. Same options as the installed
``snaplog-etl`` command.
"""

import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from snaplog_etl.cli.main import main


if __name__ == "__main__":
    main()
