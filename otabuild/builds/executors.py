"""Build executors.

An executor receives a BuildJob and runs the build somewhere else. It
reports back only through the job's callback URLs, so dispatch returns as
soon as the job has been handed over.

Variants:
- SubprocessExecutor: spawns a local builder command
- DockerExecutor: runs the builder image with the blob store mounted
- HttpExecutor: POSTs the job to a remote builder service
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from dataclasses import asdict, replace
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

from otabuild.errors import ExecutorDispatchError
from otabuild.types import BuildJob

if TYPE_CHECKING:
    from otabuild.config import Settings

logger = logging.getLogger(__name__)

# Mount point of the blob store inside builder containers
CONTAINER_STORAGE_PATH = "/app/storage"


class BuildExecutor(Protocol):
    """Interface every executor variant satisfies."""

    def dispatch(self, job: BuildJob) -> None:
        """Hand a job over for asynchronous execution.

        Raises:
            ExecutorDispatchError: If the job could not be handed over.
        """
        ...

    def cancel(self, build_id: str) -> None:
        """Best-effort stop of a running job."""
        ...


class SubprocessExecutor:
    """Run each build as a local child process.

    Output goes to ``<log_dir>/<build_id>.log``. The process handle is kept
    so a timed-out build can be terminated.
    """

    def __init__(self, command: list[str], log_dir: Path) -> None:
        if not command:
            raise ValueError("executor command must not be empty")
        self.command = list(command)
        self.log_dir = Path(log_dir)
        self._processes: dict[str, subprocess.Popen[bytes]] = {}
        self._lock = threading.Lock()

    def _spawn(self, cmd: list[str], job: BuildJob, env: dict[str, str]) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.log_dir / f"{job.build_id}.log"
        cmd_str = shlex.join(cmd)
        logger.info("Starting build %s: %s", job.build_id, cmd_str)

        try:
            with log_path.open("w") as log_file:
                log_file.write(f"# Command: {cmd_str}\n")
                log_file.flush()
                process = subprocess.Popen(
                    cmd,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    env=env,
                )
        except OSError as e:
            logger.error("Failed to start build %s: %s", job.build_id, e)
            raise ExecutorDispatchError(
                f"Failed to start executor: {e}"
            ) from e

        with self._lock:
            self._processes[job.build_id] = process

    def dispatch(self, job: BuildJob) -> None:
        """Spawn the builder command with the job in its environment."""
        env = dict(os.environ)
        env.update(job.to_env())
        self._spawn(self.command, job, env)

    def cancel(self, build_id: str) -> None:
        """Terminate the build's process if it is still running."""
        with self._lock:
            process = self._processes.pop(build_id, None)
        if process is None:
            return
        if process.poll() is None:
            logger.warning("Terminating executor process for build %s", build_id)
            process.terminate()


class DockerExecutor(SubprocessExecutor):
    """Run each build in a throwaway container.

    The blob store root is mounted at CONTAINER_STORAGE_PATH and the job's
    paths are rewritten to point inside the mount.
    """

    def __init__(
        self,
        image: str,
        storage_dir: Path,
        log_dir: Path,
        docker_bin: str = "docker",
    ) -> None:
        super().__init__([docker_bin], log_dir)
        self.image = image
        self.storage_dir = Path(storage_dir).absolute()
        self.docker_bin = docker_bin

    def compose_command(self, job: BuildJob) -> list[str]:
        """Compose the ``docker run`` command for a job."""
        container_job = replace(
            job,
            archive_location=f"{CONTAINER_STORAGE_PATH}/tarballs/{job.build_id}.tar.gz",
            storage_path=CONTAINER_STORAGE_PATH,
        )
        cmd = [
            self.docker_bin,
            "run",
            "--rm",
            "--name",
            f"otabuild-{job.build_id}",
            "-v",
            f"{self.storage_dir}:{CONTAINER_STORAGE_PATH}",
            "--network",
            "host",
        ]
        for key, value in container_job.to_env().items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.append(self.image)
        return cmd

    def dispatch(self, job: BuildJob) -> None:
        """Start the builder container."""
        self._spawn(self.compose_command(job), job, dict(os.environ))


class HttpExecutor:
    """Hand jobs to a remote builder service over HTTP."""

    def __init__(
        self,
        url: str,
        timeout: float = 30,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def dispatch(self, job: BuildJob) -> None:
        """POST the job as JSON; any non-2xx answer is a dispatch failure."""
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(self.url, json=asdict(job))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExecutorDispatchError(
                f"Executor rejected job: HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise ExecutorDispatchError(f"Executor timed out: {e}") from e
        except httpx.RequestError as e:
            raise ExecutorDispatchError(f"Executor unreachable: {e}") from e
        finally:
            if self._client is None:
                client.close()
        logger.info("Dispatched build %s to %s", job.build_id, self.url)

    def cancel(self, build_id: str) -> None:
        """Remote jobs cannot be cancelled; the timeout still fails the build."""
        logger.info("Cancel requested for remote build %s (not supported)", build_id)


def create_executor(settings: Settings) -> BuildExecutor:
    """Create the executor variant selected by configuration.

    Raises:
        ValueError: If the http executor is selected without a URL.
    """
    if settings.executor == "docker":
        return DockerExecutor(
            image=settings.executor_image,
            storage_dir=settings.storage_dir,
            log_dir=settings.executor_log_dir,
        )
    if settings.executor == "http":
        if not settings.executor_url:
            raise ValueError("executor_url is required for the http executor")
        return HttpExecutor(settings.executor_url, timeout=settings.dispatch_timeout)
    return SubprocessExecutor(settings.executor_command, settings.executor_log_dir)


__all__ = [
    "CONTAINER_STORAGE_PATH",
    "BuildExecutor",
    "DockerExecutor",
    "HttpExecutor",
    "SubprocessExecutor",
    "create_executor",
]
