"""Root-level pytest fixtures for the snaplog-etl test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus the decoder objects most tests need. Tests build configs
through these fixtures instead of raw dicts.
"""

import pytest
from datetime import datetime, timezone
from pathlib import Path

from snaplog_etl.metrics import ParserMetrics
from snaplog_etl.parser.correlator import TestCorrelator
from snaplog_etl.pipeline.sink import MemoryRowSink
from snaplog_etl.schemas import ParamConfig, UserConfig, resolve_config
from snaplog_etl.web100 import VariableSchema


PARSE_TIME = datetime(2017, 5, 10, 0, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults."""
    return ParamConfig()


@pytest.fixture
def internal_config(param_config, tmp_path):
    """Fully validated runtime configuration pointed at a temp input dir."""
    user = UserConfig(INPUT_DIR=str(tmp_path / "input"), BASE_DIR=str(tmp_path / "output"))
    return resolve_config(param_config, user, None)


@pytest.fixture
def make_config(param_config, tmp_path):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_small_cap(make_config):
    ...     config = make_config(MAX_SNAPSHOTS=2)
    ...     assert config.correlator.max_snapshots == 2
    """
    def _make(**user_overrides):
        user_overrides.setdefault("INPUT_DIR", str(tmp_path / "input"))
        user_overrides.setdefault("BASE_DIR", str(tmp_path / "output"))
        return resolve_config(param_config, UserConfig(**user_overrides), None)

    return _make


# =============================================================================
# Decoder Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def schema():
    """The bundled tcp-kis variable schema (read-only, shared)."""
    return VariableSchema.load_default()


@pytest.fixture
def metrics():
    return ParserMetrics()


@pytest.fixture
def sink():
    return MemoryRowSink()


@pytest.fixture
def make_correlator(schema, sink, metrics):
    """Factory for correlators writing to the in-memory ``sink`` fixture."""
    def _make(config=None, row_sink=None):
        return TestCorrelator(schema, row_sink if row_sink is not None else sink,
                              config=config, metrics=metrics, clock=lambda: PARSE_TIME)
    return _make


@pytest.fixture
def correlator(make_correlator):
    return make_correlator()


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def output_dirs(tmp_path):
    """Standard output directory structure: base, warehouse, state, logs."""
    base = tmp_path / "output"
    dirs = {
        "base": base,
        "warehouse": base / "warehouse",
        "state": base / "state",
        "logs": base / "logs",
    }
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)
    return dirs


@pytest.fixture
def input_dir(tmp_path) -> Path:
    d = tmp_path / "input"
    d.mkdir(parents=True, exist_ok=True)
    return d
