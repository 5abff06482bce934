import pytest
import queue
from pathlib import Path
import tempfile
import shutil

from snaplog_etl.pipeline.file_tracker import TaskTracker
from snaplog_etl.schemas import ParamConfig, InternalConfig
from snaplog_etl.schemas.resolve import resolve_config
from snaplog_etl.setup_directories import setup_output_directories

from tests.helpers.fake_snaplog import TEST_TIME, full_test_members, make_tar


@pytest.fixture
def temp_dir():
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d)


@pytest.fixture
def tracker(temp_dir):
    t = TaskTracker(temp_dir / "tracker.db")
    yield t
    t.close()


@pytest.fixture
def archive_dir(temp_dir):
    d = temp_dir / "archives"
    d.mkdir()
    return d


@pytest.fixture
def pipeline_config(temp_dir, archive_dir) -> InternalConfig:
    """InternalConfig for pipeline tests: small archives accepted, one worker."""
    user = {
        "INPUT_DIR": str(archive_dir),
        "BASE_DIR": str(temp_dir / "output"),
        "NUM_WORKERS": 1,
        "scanner": {"min_file_size": 0},
    }
    return resolve_config(ParamConfig(), user, None)


@pytest.fixture
def pipeline_output_dirs(temp_dir):
    """Output directories for pipeline tests."""
    return setup_output_directories(temp_dir / "output")


@pytest.fixture
def task_queue():
    return queue.Queue()


@pytest.fixture
def make_archive(archive_dir):
    """Write a .tgz holding one complete test per time token."""
    def _make(name, times=(TEST_TIME,), snapshots=3):
        members = []
        for t in times:
            members.extend(full_test_members(time=t, snapshots=snapshots))
        return make_tar(archive_dir / name, members)
    return _make
