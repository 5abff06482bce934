"""UserConfig: Forgiving, minimal user-facing configuration.

Accepts user inputs with upper-case aliases for the common settings
(INPUT_DIR -> scanner.input_dir, MODE -> mode). Users only specify what
they want to override from the expert defaults.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator, model_validator
from snaplog_etl.schemas.base import EtlBaseModel


class UserScannerConfig(EtlBaseModel):
    """User-facing scanner config."""
    input_dir: Optional[str] = None
    patterns: Optional[list[str]] = None
    poll_interval_sec: Optional[int] = None
    min_file_size: Optional[int] = None


class UserCorrelatorConfig(EtlBaseModel):
    """User-facing correlator config."""
    table: Optional[str] = None
    max_snapshots: Optional[int] = None
    max_payload_bytes: Optional[int] = None
    small_payload_bytes: Optional[int] = None
    suspicious_payload_sizes: Optional[list[int]] = None
    contract_policy: Optional[str] = None

    @field_validator("contract_policy", mode="before")
    @classmethod
    def normalize_policy(cls, v):
        """Normalize policy names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class UserSinkConfig(EtlBaseModel):
    """User-facing sink config."""
    db_filename_pattern: Optional[str] = None
    batch_size: Optional[int] = None
    export_parquet: Optional[bool] = None
    compression: Optional[str] = None


class UserProcessorConfig(EtlBaseModel):
    """User-facing processor config."""
    num_workers: Optional[int] = None
    max_queue_size: Optional[int] = None


class UserConfig(EtlBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Converted to internal
    overrides during resolution.

    Usage
    -----
        user_cfg = UserConfig(
            INPUT_DIR="/data/ndt/archives",
            BASE_DIR="/data/ndt/output",
            MAX_SNAPSHOTS=2000,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    mode: Optional[Literal["batch", "watch"]] = Field(None, alias="MODE")
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")
    input_dir: Optional[str] = Field(None, alias="INPUT_DIR")
    poll_interval_sec: Optional[int] = Field(None, alias="POLL_INTERVAL_SEC")

    # Decoder / correlator settings (flat aliases)
    schema_path: Optional[str] = Field(None, alias="SCHEMA_PATH")
    table: Optional[str] = Field(None, alias="TABLE")
    max_snapshots: Optional[int] = Field(None, alias="MAX_SNAPSHOTS")
    max_payload_mb: Optional[float] = Field(None, alias="MAX_PAYLOAD_MB")

    # Sink / processor settings (flat aliases)
    export_parquet: Optional[bool] = Field(None, alias="EXPORT_PARQUET")
    num_workers: Optional[int] = Field(None, alias="NUM_WORKERS")

    # Nested overrides (advanced users)
    scanner: Optional[UserScannerConfig] = None
    correlator: Optional[UserCorrelatorConfig] = None
    sink: Optional[UserSinkConfig] = None
    processor: Optional[UserProcessorConfig] = None

    model_config = EtlBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @model_validator(mode="after")
    def infer_watch_mode_from_polling(self):
        """A poll interval without an explicit mode means watch mode."""
        if self.mode is None and self.poll_interval_sec is not None:
            self.mode = "watch"
        return self

    @field_validator("max_payload_mb", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for sizes in MiB."""
        if v is not None:
            return float(v)
        return v

    @field_validator("table", mode="before")
    @classmethod
    def normalize_table_name(cls, v):
        """Normalize table names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.mode is not None:
            overrides["mode"] = self.mode

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        # Scanner section
        scanner = {}
        if self.input_dir is not None:
            scanner["input_dir"] = str(self.input_dir)
        if self.poll_interval_sec is not None:
            scanner["poll_interval_sec"] = self.poll_interval_sec
        if self.scanner is not None:
            scanner.update(self.scanner.model_dump(exclude_none=True))
        if scanner:
            overrides["scanner"] = scanner

        if self.schema_path is not None:
            overrides["decoder"] = {"schema_path": str(self.schema_path)}

        # Correlator section
        correlator = {}
        if self.table is not None:
            correlator["table"] = self.table
        if self.max_snapshots is not None:
            correlator["max_snapshots"] = self.max_snapshots
        if self.max_payload_mb is not None:
            correlator["max_payload_bytes"] = int(self.max_payload_mb * 1024 * 1024)
        if self.correlator is not None:
            correlator.update(self.correlator.model_dump(exclude_none=True))
        if correlator:
            overrides["correlator"] = correlator

        # Sink section
        sink = {}
        if self.export_parquet is not None:
            sink["export_parquet"] = self.export_parquet
        if self.sink is not None:
            sink.update(self.sink.model_dump(exclude_none=True))
        if sink:
            overrides["sink"] = sink

        # Processor section
        processor = {}
        if self.num_workers is not None:
            processor["num_workers"] = self.num_workers
        if self.processor is not None:
            processor.update(self.processor.model_dump(exclude_none=True))
        if processor:
            overrides["processor"] = processor

        return overrides
