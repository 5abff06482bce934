"""CLIConfig: Command-line operational overrides.

Minimal configuration for the parameters that commonly change between
runs: mode, input and output paths, worker count, verbosity.
"""

from typing import Literal, Optional
from pydantic import Field, model_validator
from snaplog_etl.schemas.base import EtlBaseModel


class CLIConfig(EtlBaseModel):
    """Command-line configuration overrides.

    Highest priority in config resolution.

    Notes
    -----
    If a poll interval is given but mode is not, mode is set to "watch"
    here rather than in runtime code.

    Usage
    -----
        cli_cfg = CLIConfig(
            mode="batch",
            input_dir="/data/ndt/archives",
            base_dir="/scratch/snaplog_output",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    mode: Optional[Literal["batch", "watch"]] = None
    input_dir: Optional[str] = None
    base_dir: Optional[str] = None
    schema_path: Optional[str] = None
    num_workers: Optional[int] = Field(None, ge=1)
    poll_interval_sec: Optional[int] = Field(None, ge=1)
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    @model_validator(mode="after")
    def infer_watch_mode_from_polling(self):
        """If a poll interval is provided but mode is not, use watch mode."""
        if self.mode is None and self.poll_interval_sec is not None:
            self.mode = "watch"
        return self

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

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

        scanner_overrides = {}
        if self.input_dir is not None:
            scanner_overrides["input_dir"] = str(self.input_dir)
        if self.poll_interval_sec is not None:
            scanner_overrides["poll_interval_sec"] = self.poll_interval_sec
        if scanner_overrides:
            overrides["scanner"] = scanner_overrides

        if self.schema_path is not None:
            overrides["decoder"] = {"schema_path": str(self.schema_path)}

        if self.num_workers is not None:
            overrides["processor"] = {"num_workers": self.num_workers}

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
