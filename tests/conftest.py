from __future__ import annotations

import subprocess
from pathlib import Path

import pytest


class FakeDocker:
    """
    Stands in for subprocess.run at the DockerExecutor boundary.

    Responses are matched by substring against the joined command line;
    the first registered match wins, otherwise the call succeeds silently.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self._responses: list[tuple[str, dict]] = []

    def on(self, needle: str, *, returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"", raises=None):
        self._responses.append(
            (needle, {"returncode": returncode, "stdout": stdout, "stderr": stderr, "raises": raises})
        )
        return self

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        line = " ".join(cmd)
        for needle, resp in self._responses:
            if needle in line:
                break
        else:
            resp = {"returncode": 0, "stdout": b"", "stderr": b"", "raises": None}

        if resp["raises"] is not None:
            raise resp["raises"]

        stdout, stderr = resp["stdout"], resp["stderr"]
        if kwargs.get("text"):
            stdout, stderr = stdout.decode(), stderr.decode()
        return subprocess.CompletedProcess(cmd, resp["returncode"], stdout=stdout, stderr=stderr)

    def runs(self) -> list[list[str]]:
        return [c for c in self.calls if len(c) > 1 and c[1] == "run"]


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def fixtures_dir(tmp_path: Path) -> Path:
    root = tmp_path / "fixtures"
    (root / "output").mkdir(parents=True)
    (root / "expected").mkdir()
    return root
