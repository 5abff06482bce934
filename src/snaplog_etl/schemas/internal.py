"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully
validated and frozen, and holds an explicit value for everything the
processing code reads.
"""

from typing import Literal, Optional
from pydantic import ConfigDict, Field
from snaplog_etl.schemas.base import EtlBaseModel


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

_FROZEN = ConfigDict(
    extra='forbid',
    validate_assignment=True,
    use_enum_values=True,
    str_strip_whitespace=True,
    frozen=True,
)


class InternalScannerConfig(EtlBaseModel):
    """Runtime scanner configuration.

    Note: input_dir may be None while merging, but resolve_config()
    rejects a config without one.
    """
    input_dir: Optional[str]
    patterns: list[str]
    poll_interval_sec: int
    min_file_size: int

    model_config = _FROZEN


class InternalDecoderConfig(EtlBaseModel):
    """Runtime decoder configuration."""
    schema_path: Optional[str]

    model_config = _FROZEN


class InternalCorrelatorConfig(EtlBaseModel):
    """Runtime correlator configuration."""
    table: str
    max_snapshots: int = Field(ge=1)
    max_payload_bytes: int = Field(ge=1)
    small_payload_bytes: int = Field(ge=0)
    suspicious_payload_sizes: tuple[int, ...]
    contract_policy: Literal["fail_fast", "skip_row"]

    model_config = _FROZEN


class InternalSinkConfig(EtlBaseModel):
    """Runtime row sink configuration."""
    db_filename_pattern: str
    batch_size: int = Field(ge=1)
    export_parquet: bool
    compression: Literal["snappy", "gzip", "lz4", "none"]

    model_config = _FROZEN


class InternalProcessorConfig(EtlBaseModel):
    """Runtime processor configuration."""
    num_workers: int = Field(ge=1, le=64)
    max_queue_size: int = Field(ge=1)

    model_config = _FROZEN


class InternalLoggingConfig(EtlBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    model_config = _FROZEN


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(EtlBaseModel):
    """Authoritative runtime configuration.

    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.max_snapshots = config.correlator.max_snapshots  # NOT .get()

    Rules
    -----
    - NO .get() calls
    - NO fallback defaults
    - NO validation in runtime code

    ``output_dirs`` is filled in by the runner once directories exist.
    """

    mode: Literal["batch", "watch"]
    base_dir: str
    scanner: InternalScannerConfig
    decoder: InternalDecoderConfig
    correlator: InternalCorrelatorConfig
    sink: InternalSinkConfig
    processor: InternalProcessorConfig
    logging: InternalLoggingConfig
    output_dirs: dict[str, str] = Field(default_factory=dict)

    model_config = _FROZEN
