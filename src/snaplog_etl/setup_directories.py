"""
Directory setup for the snaplog ETL pipeline.

Everything a run writes lives under one base directory:
- warehouse: row database and Parquet export
- state: task tracker database
- logs: pipeline log files
"""

from pathlib import Path


def setup_output_directories(base_output_dir=None):
    """
    Set up the output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path, optional
        Base output directory. If None, prompts user for input.

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'warehouse', 'state', 'logs'
    """

    if base_output_dir is None:
        print("\n" + "=" * 70)
        print("SNAPLOG ETL - OUTPUT DIRECTORY SETUP")
        print("=" * 70)
        print("\nCurrent location: ", Path.cwd())
        print("\nDefault options:")
        print("  1. Current directory: ./snaplog_output")
        print("  2. Home directory: ~/snaplog_output")
        print("  3. Custom path")

        choice = input("\nSelect option (1/2/3) [default=1]: ").strip() or "1"

        if choice == "2":
            base_output_dir = Path.home() / "snaplog_output"
        elif choice == "3":
            path_input = input("Enter custom path (use ~ for home): ").strip()
            base_output_dir = Path(path_input).expanduser()
        else:
            base_output_dir = Path.cwd() / "snaplog_output"

    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "warehouse": base_output_dir / "warehouse",
        "state": base_output_dir / "state",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    print("\nOutput directories created:")
    for key, path in directories.items():
        print(f"  {key:12s}: {path}")
    print("=" * 70 + "\n")

    return directories


def get_warehouse_path(output_dirs, filename):
    """Path of a file in the warehouse directory (e.g. the row database)."""
    warehouse = Path(output_dirs["warehouse"])
    warehouse.mkdir(parents=True, exist_ok=True)
    return warehouse / filename


def get_tracker_path(output_dirs, table):
    """Task tracker database for ``table``: state/{table}_task_tracker.db"""
    state = Path(output_dirs["state"])
    state.mkdir(parents=True, exist_ok=True)
    return state / f"{table}_task_tracker.db"


def get_log_path(output_dirs, table):
    """Pipeline log file for ``table``: logs/pipeline_{table}.log"""
    log_dir = Path(output_dirs["logs"])
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"pipeline_{table}.log"
