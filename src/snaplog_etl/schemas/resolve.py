"""Configuration resolution and merging logic.

``resolve_config()`` is the single entrypoint: it merges ParamConfig,
UserConfig and CLIConfig in precedence order and returns a validated
InternalConfig.

Precedence (highest to lowest):
1. CLIConfig (command-line overrides)
2. UserConfig (user file)
3. ParamConfig (expert defaults)
"""

from typing import Optional, Union

from snaplog_etl.schemas.cli import CLIConfig
from snaplog_etl.schemas.internal import InternalConfig
from snaplog_etl.schemas.param import ParamConfig
from snaplog_etl.schemas.user import UserConfig


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Deep merge multiple dictionaries.

    Later dictionaries override earlier ones. Nested dictionaries are
    merged recursively; other values are replaced.

    Parameters
    ----------
    base : dict
        Base dictionary (lowest priority)
    *overrides : dict
        Override dictionaries (higher priority, left to right)

    Returns
    -------
    dict
        Merged dictionary

    Examples
    --------
    >>> base = {"a": 1, "b": {"c": 2, "d": 3}}
    >>> override = {"b": {"d": 4, "e": 5}, "f": 6}
    >>> deep_merge(base, override)
    {'a': 1, 'b': {'c': 2, 'd': 4, 'e': 5}, 'f': 6}
    """
    result = base.copy()

    for override in overrides:
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = deep_merge(result[key], value)
            else:
                result[key] = value

    return result


def _coerce(cfg, model):
    """Validate a dict (or pass through a model instance) as ``model``; None or {} gives defaults."""
    if isinstance(cfg, model):
        return cfg
    return model.model_validate(cfg or {})


def resolve_config(
    param_cfg: Union[dict, ParamConfig],
    user_cfg: Optional[Union[dict, UserConfig]] = None,
    cli_cfg: Optional[Union[dict, CLIConfig]] = None,
    require_input: bool = True,
) -> InternalConfig:
    """Resolve final runtime configuration from param, user, and CLI configs.

    Parameters
    ----------
    param_cfg : dict or ParamConfig
        Expert configuration with complete defaults. Required.
    user_cfg : dict or UserConfig, optional
        User configuration with overrides.
    cli_cfg : dict or CLIConfig, optional
        Command-line overrides.
    require_input : bool, optional
        If True (default), a config without ``scanner.input_dir`` is
        rejected. Library users that drive ``Task`` directly pass False.

    Returns
    -------
    InternalConfig
        Fully validated, immutable runtime configuration

    Raises
    ------
    ValidationError
        If any config fails Pydantic validation
    ValueError
        If ``require_input`` is set and no input directory was given

    Examples
    --------
    >>> config = resolve_config(ParamConfig(), {"INPUT_DIR": "/data", "MAX_SNAPSHOTS": 2000})
    >>> config.correlator.max_snapshots
    2000
    """
    param = _coerce(param_cfg, ParamConfig)
    user = _coerce(user_cfg, UserConfig)
    cli = _coerce(cli_cfg, CLIConfig)

    merged = deep_merge(
        param.model_dump(),
        user.to_internal_overrides(),
        cli.to_internal_overrides(),
    )

    if require_input and not merged["scanner"].get("input_dir"):
        raise ValueError("scanner.input_dir is required (set INPUT_DIR or --input-dir)")

    return InternalConfig.model_validate(merged)
