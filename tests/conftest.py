"""Shared fixtures for otabuild tests."""

from pathlib import Path

import pytest

from otabuild.builds.models import BuildRecord
from otabuild.config import Settings
from otabuild.db import create_all_tables, get_engine, get_session_factory
from otabuild.errors import ExecutorDispatchError
from otabuild.storage.blobs import LocalBlobStore
from otabuild.types import BuildJob, BuildStatus


class RecordingExecutor:
    """Executor double that records jobs instead of running them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.jobs: list[BuildJob] = []
        self.cancelled: list[str] = []

    def dispatch(self, job: BuildJob) -> None:
        if self.fail:
            raise ExecutorDispatchError("Executor unreachable: connection refused")
        self.jobs.append(job)

    def cancel(self, build_id: str) -> None:
        self.cancelled.append(build_id)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory."""
    return Settings(
        storage_dir=tmp_path / "storage",
        db_url=f"sqlite:///{tmp_path}/otabuild.db",
        executor_log_dir=tmp_path / "logs",
        public_url="http://testserver",
        build_timeout=900,
    )


@pytest.fixture
def engine(settings: Settings):
    """File-backed SQLite engine with all tables created."""
    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Create a session factory for testing."""
    return get_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """Create a session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blob_store(settings: Settings) -> LocalBlobStore:
    """Blob store in the temporary storage directory."""
    return LocalBlobStore(settings.storage_dir)


@pytest.fixture
def executor() -> RecordingExecutor:
    """Executor double that accepts every job."""
    return RecordingExecutor()


@pytest.fixture
def failing_executor() -> RecordingExecutor:
    """Executor double whose dispatch always fails."""
    return RecordingExecutor(fail=True)


@pytest.fixture
def make_build(session_factory):
    """Factory inserting a BuildRecord and returning it."""

    def _make(
        build_id: str = "bld_test000001",
        status: BuildStatus = BuildStatus.PENDING,
        **fields,
    ) -> BuildRecord:
        values = {
            "project_key": "demo",
            "platform": "all",
            "runtime_version": "exposdk:52.0.0",
            "source_config": {"name": "Demo", "slug": "demo"},
            "archive_path": f"tarballs/{build_id}.tar.gz",
        }
        values.update(fields)
        build = BuildRecord(id=build_id, status=status.value, **values)
        with session_factory() as session:
            session.add(build)
            session.commit()
        return build

    return _make
