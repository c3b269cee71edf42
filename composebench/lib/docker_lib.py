'''
Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved. This notice is intended as a precaution against inadvertent publication and does not imply publication or any waiver of confidentiality.
The year included in the foregoing notice is the year of creation of the work.
All code contained here is Property of Advanced Micro Devices, Inc.
'''

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import subprocess

import docker

from composebench.lib.errors import ControlPlaneError, RunCancelled

log = logging.getLogger(__name__)

# How often a running `docker compose up` checks for cancellation.
_PROCESS_POLL_SECONDS = 0.5
_TERMINATE_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class ContainerState:
    """Subset of `docker inspect` needed to decide whether a container is ready."""

    name: str
    running: bool
    dead: bool
    # None when the container has no health check configured
    health_status: Optional[str] = None
    status: str = ""

    @property
    def has_health_check(self) -> bool:
        return self.health_status is not None

    @property
    def healthy(self) -> bool:
        return self.health_status is not None and self.health_status.lower() == "healthy"


class DockerControlPlane:
    """
    Container control plane used by test runs.

    Compose operations shell out to the `docker compose` CLI, container
    inspection and exec go through the Docker SDK. All calls block and may be
    issued from background threads.
    """

    def __init__(self, client=None, docker_bin: str = "docker"):
        self._client = client
        self.docker_bin = docker_bin

    @property
    def client(self):
        if self._client is None:
            log.debug("Connecting to the local Docker daemon")
            self._client = docker.from_env()
        return self._client

    def _compose_cmd(self, files: Sequence[str]) -> List[str]:
        cmd = [self.docker_bin, "compose"]
        for f in files:
            cmd.extend(["-f", str(f)])
        return cmd

    def compose_up(self, files: Sequence[str], stdout=None, stderr=None, ctx=None):
        """
        Run `docker compose up` attached, writing its output to stdout/stderr.

        Blocks until the composition stops. When `ctx` is cancelled the process
        is terminated and RunCancelled is raised.
        """
        cmd = self._compose_cmd(files) + ["up"]
        log.debug(f"Executing {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(cmd, stdout=stdout, stderr=stderr, stdin=subprocess.DEVNULL)
        except OSError as e:
            raise ControlPlaneError(f"failed to run docker compose up: {e}") from e

        while True:
            try:
                returncode = proc.wait(timeout=_PROCESS_POLL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if ctx is not None and ctx.cancelled():
                    self._terminate(proc)
                    raise RunCancelled("docker compose up cancelled")

        if returncode != 0:
            raise ControlPlaneError(f"docker compose up exited with code {returncode}")

    def _terminate(self, proc):
        proc.terminate()
        try:
            proc.wait(timeout=_TERMINATE_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            log.warning(f"docker compose up (pid {proc.pid}) did not stop, killing it")
            proc.kill()
            proc.wait()

    def compose_down(self, files: Sequence[str]):
        cmd = self._compose_cmd(files) + ["down"]
        out = self._run(cmd)
        if out.returncode != 0:
            raise ControlPlaneError(f"docker compose down exited with code {out.returncode}: {out.stderr.strip()}")

    def compose_ps(self, files: Sequence[str], quiet: bool = True) -> List[str]:
        """Return the container identifiers (or the table lines if not quiet) of a composition."""
        cmd = self._compose_cmd(files) + ["ps"]
        if quiet:
            cmd.append("--quiet")
        out = self._run(cmd)
        if out.returncode != 0:
            raise ControlPlaneError(f"docker compose ps exited with code {out.returncode}: {out.stderr.strip()}")
        if quiet:
            return out.stdout.split()
        return [line for line in out.stdout.splitlines() if line.strip()]

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        log.debug(f"Executing {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, capture_output=True, text=True, stdin=subprocess.DEVNULL)
        except OSError as e:
            raise ControlPlaneError(f"failed to run {cmd[0]}: {e}") from e

    def container_inspect(self, container_id: str) -> ContainerState:
        try:
            info = self.client.api.inspect_container(container_id)
        except docker.errors.DockerException as e:
            raise ControlPlaneError(f"failed to inspect container {container_id}: {e}") from e

        state = info.get("State") or {}
        health = state.get("Health")
        return ContainerState(
            name=(info.get("Name") or container_id).lstrip("/"),
            running=bool(state.get("Running")),
            dead=bool(state.get("Dead")),
            health_status=health.get("Status", "") if health else None,
            status=state.get("Status", ""),
        )

    def container_exec(self, container: str, script: str) -> Tuple[int, str]:
        """Run a shell script inside a running container, returning (exit_code, output)."""
        try:
            target = self.client.containers.get(container)
            exit_code, output = target.exec_run(["sh", "-c", script], stdout=True, stderr=True)
        except docker.errors.DockerException as e:
            raise ControlPlaneError(f"failed to exec in container {container}: {e}") from e

        output_str = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output)
        return exit_code, output_str

    def close(self):
        if self._client is not None:
            try:
                self._client.close()
            except OSError as e:
                log.debug(f"Docker client cleanup: {e}")
            self._client = None
