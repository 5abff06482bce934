"""Core snaplog ETL pipeline execution logic.

This module contains the actual pipeline runner, separated from argument parsing.
Scripts are thin wrappers; this is the real implementation.
"""

import json
import logging
import importlib.util
from pathlib import Path
from typing import Optional, Dict, Any

from snaplog_etl.setup_directories import get_tracker_path, setup_output_directories
from snaplog_etl.pipeline.file_tracker import TaskTracker
from snaplog_etl.pipeline.orchestrator import PipelineOrchestrator
from snaplog_etl.schemas import resolve_config, ParamConfig, UserConfig, CLIConfig


logger = logging.getLogger(__name__)


def load_user_config_dict(config_path: Optional[str]) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Parameters
    ----------
    config_path : str or None
        Path to user config Python file containing a CONFIG dict. None
        means no user config (empty dict).

    Returns
    -------
    dict
        Raw user configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    if config_path is None:
        return {}

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def run_etl_pipeline(
    user_config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None,
    max_runtime: Optional[int] = None,
    rerun: bool = False,
    retry_failed: bool = False,
    dry_run: bool = False,
    verbose: bool = False
) -> None:
    """Execute the snaplog ETL pipeline.

    1. Loads and resolves configuration (Param < User < CLI)
    2. Sets up output directories
    3. Optionally cleans them (``rerun``) or resets failed tasks
       (``retry_failed``)
    4. Runs the pipeline orchestrator until completion or interruption

    Parameters
    ----------
    user_config_path : str, optional
        Path to user config file (Python file with CONFIG dict).
    cli_args : dict, optional
        CLI argument overrides. Keys: mode, input_dir, base_dir,
        schema_path, num_workers, poll_interval_sec, log_level. All optional.
    max_runtime : int, optional
        Maximum runtime in minutes (watch mode only).
    rerun : bool, optional
        If True, delete the output directory before running.
    retry_failed : bool, optional
        If True, tasks that failed in an earlier run are processed again.
    dry_run : bool, optional
        If True, rows are kept in memory and no warehouse is written.
    verbose : bool, optional
        If True, enable DEBUG logging and print full resolved config.

    Raises
    ------
    FileNotFoundError
        If user_config_path does not exist.
    ValueError
        If configuration validation fails or no input directory is set.

    Examples
    --------
    Process one directory of archives and stop::

        run_etl_pipeline(cli_args={"input_dir": "/data/ndt/2017/05/09"})

    Keep watching a drop directory for an hour::

        run_etl_pipeline("scripts/user_config.py",
                         cli_args={"mode": "watch"}, max_runtime=60)
    """
    param_cfg = ParamConfig()

    user_cfg = UserConfig.model_validate(load_user_config_dict(user_config_path))

    cli_args = dict(cli_args or {})
    if verbose and "log_level" not in cli_args:
        cli_args["log_level"] = "DEBUG"

    cli_dict = {k: v for k, v in cli_args.items() if v is not None}
    cli_cfg = CLIConfig.model_validate(cli_dict) if cli_dict else CLIConfig()

    config = resolve_config(param_cfg, user_cfg, cli_cfg)

    if rerun:
        import shutil
        base_dir_path = Path(config.base_dir)
        if base_dir_path.exists():
            print(f"Cleaning output directory: {base_dir_path}")
            shutil.rmtree(base_dir_path)
            print("Output directory cleaned")

    output_dirs = setup_output_directories(config.base_dir)
    config = config.model_copy(update={"output_dirs": {k: str(v) for k, v in output_dirs.items()}})

    if retry_failed:
        with TaskTracker(get_tracker_path(output_dirs, config.correlator.table)) as tracker:
            tracker.reset_failed(config.correlator.table)

    print(f"\n{'='*60}")
    print("Snaplog ETL Pipeline")
    print('='*60)
    print(f"Config:  {user_config_path or '(defaults)'}")
    print(f"Input:   {config.scanner.input_dir}")
    print(f"Table:   {config.correlator.table}")
    print(f"Mode:    {config.mode}")
    print(f"Workers: {config.processor.num_workers}")
    print(f"Output:  {config.base_dir}{' (dry run)' if dry_run else ''}")
    print('='*60)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(), indent=2))
        print('='*60)

    orchestrator = PipelineOrchestrator(config, dry_run=dry_run)
    orchestrator.start(max_runtime=max_runtime)
