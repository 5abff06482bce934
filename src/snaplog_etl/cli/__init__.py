"""Command-line interface modules for snaplog ETL pipeline execution.

This package contains the execution logic; scripts/ are thin wrappers.
"""

from snaplog_etl.cli.run_etl import run_etl_pipeline, load_user_config_dict

__all__ = ['run_etl_pipeline', 'load_user_config_dict']
