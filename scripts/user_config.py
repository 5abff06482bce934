"""Snaplog ETL User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the pipeline behavior. Advanced settings are in snaplog_etl/schemas/param.py

Usage:
    python scripts/run_etl_pipeline.py --config scripts/user_config.py
    python scripts/run_etl_pipeline.py --config scripts/user_config.py --mode watch
"""

CONFIG = {
    # ========================================================================
    # PIPELINE MODE & INPUT
    # ========================================================================
    "MODE": "batch",          # "batch" (scan once) or "watch" (keep polling)
    "INPUT_DIR": "./archives",          # Where the .tgz test archives are
    "BASE_DIR": "./snaplog_output",     # All outputs go here

    # ========================================================================
    # WATCH MODE SETTINGS
    # ========================================================================
    # "POLL_INTERVAL_SEC": 60,  # Seconds between scans (implies watch mode)

    # ========================================================================
    # DECODING SETTINGS
    # ========================================================================
    "TABLE": "ndt",           # Warehouse table name
    "SCHEMA_PATH": None,      # None = bundled tcp-kis.txt
    "MAX_SNAPSHOTS": 2800,    # Last snapshot decoded is min(count, this) - 1
    "MAX_PAYLOAD_MB": 10,     # Larger snaplogs are skipped

    # ========================================================================
    # OUTPUT & WORKERS
    # ========================================================================
    "EXPORT_PARQUET": True,
    "NUM_WORKERS": 2,
    # Note: batch size, compression and contract policy are configured in
    # snaplog_etl/schemas/param.py
}
