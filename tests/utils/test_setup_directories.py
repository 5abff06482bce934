from pathlib import Path

import pytest

from snaplog_etl.setup_directories import (
    get_log_path,
    get_tracker_path,
    get_warehouse_path,
    setup_output_directories,
)

pytestmark = pytest.mark.unit


def test_setup_output_directories_creates_all(tmp_path):
    dirs = setup_output_directories(tmp_path)

    assert set(dirs.keys()) == {"base", "warehouse", "state", "logs"}

    for path in dirs.values():
        assert isinstance(path, Path)
        assert path.is_dir()


def test_layout_under_base(tmp_path):
    dirs = setup_output_directories(tmp_path / "out")
    base = (tmp_path / "out").resolve()

    assert dirs["base"] == base
    assert dirs["warehouse"] == base / "warehouse"
    assert dirs["state"] == base / "state"
    assert dirs["logs"] == base / "logs"


def test_setup_output_directories_is_idempotent(tmp_path):
    assert setup_output_directories(tmp_path) == setup_output_directories(tmp_path)


def test_accepts_string_and_expands_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    dirs = setup_output_directories("~/snaplog")
    assert dirs["base"] == (tmp_path / "snaplog").resolve()


@pytest.mark.parametrize("answers, expected", [
    ([""], "cwd"),
    (["2"], "home"),
])
def test_prompts_when_base_missing(tmp_path, monkeypatch, answers, expected):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))

    dirs = setup_output_directories()

    root = tmp_path if expected == "cwd" else tmp_path / "home"
    assert dirs["base"] == (root / "snaplog_output").resolve()


def test_prompt_custom_path(tmp_path, monkeypatch):
    replies = iter(["3", str(tmp_path / "custom")])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))

    dirs = setup_output_directories()

    assert dirs["base"] == (tmp_path / "custom").resolve()


def test_path_helpers(tmp_path):
    dirs = {k: str(v) for k, v in setup_output_directories(tmp_path).items()}

    assert get_warehouse_path(dirs, "ndt_rows.db").name == "ndt_rows.db"
    assert get_tracker_path(dirs, "ndt") == Path(dirs["state"]) / "ndt_task_tracker.db"
    assert get_log_path(dirs, "ndt") == Path(dirs["logs"]) / "pipeline_ndt.log"


def test_path_helpers_create_missing_dirs(tmp_path):
    dirs = {"warehouse": tmp_path / "w", "state": tmp_path / "s", "logs": tmp_path / "l"}

    get_warehouse_path(dirs, "x.db")
    get_tracker_path(dirs, "ndt")
    get_log_path(dirs, "ndt")

    assert all(p.is_dir() for p in dirs.values())
