import pytest

from snaplog_etl.cli import main as cli_main
from snaplog_etl.cli import run_etl
from snaplog_etl.cli.run_etl import load_user_config_dict, run_etl_pipeline
from snaplog_etl.pipeline.file_tracker import TaskTracker

pytestmark = pytest.mark.unit


class FakeOrchestrator:
    instances = []

    def __init__(self, config, dry_run=False):
        self.config = config
        self.dry_run = dry_run
        self.max_runtime = "not started"
        FakeOrchestrator.instances.append(self)

    def start(self, max_runtime=None):
        self.max_runtime = max_runtime


@pytest.fixture
def fake_orchestrator(monkeypatch):
    FakeOrchestrator.instances = []
    monkeypatch.setattr(run_etl, "PipelineOrchestrator", FakeOrchestrator)
    return FakeOrchestrator


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "user_config.py"
    path.write_text(
        "CONFIG = {\n"
        f"    'INPUT_DIR': {str(tmp_path / 'input')!r},\n"
        f"    'BASE_DIR': {str(tmp_path / 'output')!r},\n"
        "    'MAX_SNAPSHOTS': 1000,\n"
        "}\n"
    )
    return path


class TestLoadUserConfig:

    def test_none_is_empty(self):
        assert load_user_config_dict(None) == {}

    def test_loads_config_dict(self, config_file):
        assert load_user_config_dict(str(config_file))["MAX_SNAPSHOTS"] == 1000

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_user_config_dict(str(tmp_path / "nope.py"))

    def test_file_without_config(self, tmp_path):
        path = tmp_path / "empty.py"
        path.write_text("SETTINGS = 1\n")
        with pytest.raises(ValueError, match="No CONFIG"):
            load_user_config_dict(str(path))


class TestRunEtlPipeline:

    def test_resolves_config_and_starts(self, config_file, tmp_path, fake_orchestrator):
        run_etl_pipeline(str(config_file), cli_args={"num_workers": 3, "mode": None},
                         max_runtime=5)

        orch = fake_orchestrator.instances[0]
        config = orch.config
        assert config.correlator.max_snapshots == 1000
        assert config.processor.num_workers == 3
        assert config.mode == "batch"
        assert orch.max_runtime == 5
        assert orch.dry_run is False
        assert config.output_dirs["warehouse"] == str((tmp_path / "output" / "warehouse").resolve())
        assert (tmp_path / "output" / "logs").is_dir()

    def test_cli_only(self, tmp_path, fake_orchestrator):
        run_etl_pipeline(cli_args={"input_dir": str(tmp_path), "base_dir": str(tmp_path / "o")},
                         dry_run=True)

        orch = fake_orchestrator.instances[0]
        assert orch.dry_run is True
        assert orch.config.scanner.input_dir == str(tmp_path)

    def test_verbose_sets_debug(self, config_file, fake_orchestrator, capsys):
        run_etl_pipeline(str(config_file), verbose=True)

        assert fake_orchestrator.instances[0].config.logging.level == "DEBUG"
        assert "Full Internal Configuration" in capsys.readouterr().out

    def test_missing_input_dir(self, tmp_path, fake_orchestrator):
        with pytest.raises(ValueError, match="input_dir"):
            run_etl_pipeline(cli_args={"base_dir": str(tmp_path)})
        assert fake_orchestrator.instances == []

    def test_rerun_cleans_output(self, config_file, tmp_path, fake_orchestrator):
        stale = tmp_path / "output" / "warehouse" / "ndt_rows.db"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"old")

        run_etl_pipeline(str(config_file), rerun=True)

        assert not stale.exists()
        assert (tmp_path / "output" / "warehouse").is_dir()

    def test_retry_failed_resets_tracker(self, config_file, tmp_path, fake_orchestrator):
        tracker_path = tmp_path / "output" / "state" / "ndt_task_tracker.db"
        with TaskTracker(tracker_path) as tracker:
            tracker.register_task("bad.tgz", "ndt")
            tracker.mark_stage_complete("bad.tgz", "parsed", error="boom")

        run_etl_pipeline(str(config_file), retry_failed=True)

        with TaskTracker(tracker_path) as tracker:
            assert tracker.get_task_status("bad.tgz")["status"] == "pending"


class TestMain:

    def test_arguments_forwarded(self, monkeypatch):
        calls = []
        monkeypatch.setattr(cli_main, "run_etl_pipeline",
                            lambda *args, **kwargs: calls.append((args, kwargs)))

        cli_main.main(["--config", "cfg.py", "--input-dir", "/data", "--mode", "watch",
                       "--num-workers", "4", "--poll-interval", "30", "--max-runtime", "10",
                       "--dry-run", "-v"])

        (args, kwargs), = calls
        assert args == ("cfg.py",)
        assert kwargs["cli_args"]["input_dir"] == "/data"
        assert kwargs["cli_args"]["mode"] == "watch"
        assert kwargs["cli_args"]["num_workers"] == 4
        assert kwargs["cli_args"]["poll_interval_sec"] == 30
        assert kwargs["cli_args"]["base_dir"] is None
        assert kwargs["max_runtime"] == 10
        assert kwargs["dry_run"] is True
        assert kwargs["verbose"] is True
        assert kwargs["rerun"] is False

    def test_invalid_mode_exits(self):
        with pytest.raises(SystemExit):
            cli_main.build_parser().parse_args(["--mode", "realtime"])
