"""ParamConfig: Expert defaults for the snaplog-etl pipeline.

ALL pipeline parameters have their default here. No runtime code defines
fallback values; this is the single source of truth for defaults.

Runtime code never reads ParamConfig directly, it only receives
InternalConfig.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from snaplog_etl.schemas.base import EtlBaseModel


MIB = 1024 * 1024
KIB = 1024


# =============================================================================
# Nested Configuration Models
# =============================================================================

class ScannerConfig(EtlBaseModel):
    """Archive scanner configuration."""
    input_dir: Optional[str] = None
    patterns: list[str] = Field(default_factory=lambda: ["*.tgz", "*.tar.gz", "*.tar"])
    poll_interval_sec: int = Field(60, ge=1, description="Polling interval in seconds (watch mode)")
    min_file_size: int = Field(1024, ge=0, description="Archives smaller than this are ignored")


class DecoderConfig(EtlBaseModel):
    """Snapshot-log decoder configuration."""
    schema_path: Optional[str] = Field(None, description="Variable schema file; None uses the bundled asset")


class CorrelatorConfig(EtlBaseModel):
    """Test correlator configuration."""
    table: str = "ndt"
    max_snapshots: int = Field(2800, ge=1, description="Final-snapshot index is capped at max_snapshots - 1")
    max_payload_bytes: int = Field(10 * MIB, ge=1, description="Larger snaplogs are rejected")
    small_payload_bytes: int = Field(16 * KIB, ge=0, description="Smaller snaplogs are flagged")
    suspicious_payload_sizes: list[int] = Field(default_factory=lambda: [4096])
    contract_policy: Literal["fail_fast", "skip_row"] = "fail_fast"

    @field_validator("table", mode="before")
    @classmethod
    def normalize_table_name(cls, v):
        """Table names are lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class SinkConfig(EtlBaseModel):
    """Row sink configuration."""
    db_filename_pattern: str = "{table}_rows.db"
    batch_size: int = Field(500, ge=1)
    export_parquet: bool = True
    compression: Literal["snappy", "gzip", "lz4", "none"] = "snappy"


class ProcessorConfig(EtlBaseModel):
    """Task processor pool configuration."""
    num_workers: int = Field(2, ge=1, le=64)
    max_queue_size: int = Field(100, ge=1)


class LoggingConfig(EtlBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(EtlBaseModel):
    """Complete expert configuration with all defaults.

    Every tunable parameter has a default here.

    Usage
    -----
    This config is NOT used directly by runtime code. It is the base layer
    in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    mode: Literal["batch", "watch"] = "batch"
    base_dir: str = "./snaplog_output"
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    correlator: CorrelatorConfig = Field(default_factory=CorrelatorConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
