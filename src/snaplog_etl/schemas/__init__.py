"""Pydantic configuration schemas for the snaplog-etl pipeline.

All configuration validation, coercion and normalization happens at
schema validation time.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
CorrelatorConfig : class
    Correlator defaults, usable on their own by library callers
"""

from snaplog_etl.schemas.resolve import resolve_config, deep_merge
from snaplog_etl.schemas.internal import InternalConfig
from snaplog_etl.schemas.param import ParamConfig, CorrelatorConfig
from snaplog_etl.schemas.user import UserConfig
from snaplog_etl.schemas.cli import CLIConfig

__all__ = [
    'resolve_config',
    'deep_merge',
    'InternalConfig',
    'ParamConfig',
    'CorrelatorConfig',
    'UserConfig',
    'CLIConfig',
]
