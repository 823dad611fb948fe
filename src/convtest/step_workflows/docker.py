# step_workflows/docker.py
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..errors import ExecutionFailed, RuntimeEnvironmentError
from ..model import ExecutionResult, Status, Target

logger = logging.getLogger(__name__)

CONTAINER_DATA = "/data"
DEFAULT_TIMEOUT = 600.0

# `docker run` exits 125 when the daemon or the image itself is the problem.
DOCKER_RUN_ERROR = 125

TOOL_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
}

RunFn = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True)
class Invocation:
    exit_code: int
    stdout: bytes
    stderr: str


class DockerExecutor:
    """
    Runs targets against the image under test.

    The fixtures directory is bind-mounted at /data and is the only part of
    the host filesystem the container sees; every fixture and output path is
    relative to it.
    """

    def __init__(
        self,
        image: str,
        fixtures_dir: Path,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        docker: str = "docker",
        run: RunFn = subprocess.run,
    ):
        self.image = image
        self.fixtures_dir = Path(fixtures_dir).resolve()
        self.timeout = timeout
        self.docker = docker
        self._run = run

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def check_available(self) -> None:
        """Raise RuntimeEnvironmentError unless the docker daemon answers."""
        try:
            proc = self._run(
                [self.docker, "info", "--format", "{{.ServerVersion}}"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except OSError as e:
            raise self._unusable(e) from None
        except subprocess.TimeoutExpired:
            raise RuntimeEnvironmentError(
                message="Timed out waiting for the docker daemon",
                hint=TOOL_HINTS["docker"],
            ) from None

        if proc.returncode != 0:
            raise RuntimeEnvironmentError(
                message="Docker daemon is not reachable",
                hint=TOOL_HINTS["docker"],
                details={"stderr": (proc.stderr or "").strip()[-2000:]},
            )
        logger.debug("docker server version %s", (proc.stdout or "").strip())

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    def command_for(
        self,
        args: Sequence[str],
        entrypoint: Optional[str] = None,
        *,
        output: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[str]:
        cmd = [self.docker, "run", "--rm"]
        if name:
            cmd.extend(["--name", name])

        # Volume mount: fixtures_dir -> /data
        cmd.extend(["-v", f"{self.fixtures_dir}:{CONTAINER_DATA}"])

        if entrypoint:
            cmd.extend(["--entrypoint", entrypoint])

        cmd.append(self.image)
        cmd.extend(_substitute(a, output=output) for a in args)
        return cmd

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def invoke(
        self,
        args: Sequence[str],
        entrypoint: Optional[str] = None,
        *,
        target: str = "",
        output: Optional[str] = None,
    ) -> Invocation:
        name = f"convtest-{uuid.uuid4().hex[:12]}"
        cmd = self.command_for(args, entrypoint, output=output, name=name)
        logger.debug("[%s] %s", target, shlex.join(cmd))

        try:
            proc = self._run(cmd, capture_output=True, timeout=self.timeout)
        except OSError as e:
            raise self._unusable(e) from None
        except subprocess.TimeoutExpired as e:
            self._kill(name)
            raise ExecutionFailed(
                target=target,
                message=f"timed out after {self.timeout:g}s",
                stderr=_decode(e.stderr),
                timed_out=True,
            ) from None

        stderr = _decode(proc.stderr)
        if proc.returncode == DOCKER_RUN_ERROR:
            raise RuntimeEnvironmentError(
                message=f"docker could not run image {self.image}",
                hint="Check that the image reference exists and can be pulled.",
                details={"stderr": stderr.strip()[-2000:]},
            )
        if proc.returncode != 0:
            raise ExecutionFailed(
                target=target,
                message="command failed",
                exit_code=proc.returncode,
                stderr=stderr[-4000:],
            )
        return Invocation(exit_code=proc.returncode, stdout=proc.stdout or b"", stderr=stderr)

    def probe_invoke(self, args: Sequence[str], entrypoint: Optional[str] = None) -> bytes:
        return self.invoke(args, entrypoint, target="probe").stdout

    def run(self, target: Target) -> ExecutionResult:
        """
        Run one leaf target. Raises ExecutionFailed or RuntimeEnvironmentError.

        The output directory must already exist; creating and clearing it is
        the run lifecycle's job.
        """
        self.check_fixtures(target)

        if target.output is not None:
            parent = (self.fixtures_dir / target.output).parent
            if not parent.is_dir():
                raise ExecutionFailed(
                    target=target.name,
                    message=f"output directory does not exist: {parent}",
                )

        if target.copy_from is not None:
            return self._copy(target)

        inv = self.invoke(target.args, target.entrypoint, target=target.name, output=target.output)
        return ExecutionResult(
            target=target.name,
            status=Status.PASS,
            exit_code=inv.exit_code,
            stdout=inv.stdout,
            stderr=inv.stderr,
        )

    def check_fixtures(self, target: Target) -> None:
        for fixture in target.fixtures:
            if not (self.fixtures_dir / fixture).exists():
                raise ExecutionFailed(target=target.name, message=f"missing fixture: {fixture}")

    def _unusable(self, exc: OSError) -> RuntimeEnvironmentError:
        if isinstance(exc, FileNotFoundError):
            message = f"{self.docker} is not installed or not in PATH"
        else:
            message = f"{self.docker} cannot be executed: {exc.strerror or exc}"
        return RuntimeEnvironmentError(message=message, hint=TOOL_HINTS["docker"])

    def _copy(self, target: Target) -> ExecutionResult:
        src = self.fixtures_dir / target.copy_from
        dst = self.fixtures_dir / (target.output or Path(target.copy_from).name)
        try:
            shutil.copyfile(src, dst)
        except OSError as e:
            raise ExecutionFailed(target=target.name, message=f"copy failed: {e}") from e
        return ExecutionResult(target=target.name, status=Status.PASS, exit_code=0)

    def _kill(self, name: str) -> None:
        try:
            self._run([self.docker, "kill", name], capture_output=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("could not kill container %s: %s", name, e)


def _substitute(arg: str, *, output: Optional[str]) -> str:
    arg = arg.replace("{data}", CONTAINER_DATA)
    if output is not None:
        arg = arg.replace("{output}", output)
    return arg


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
