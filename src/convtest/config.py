"""Run configuration resolved from CLI options and the environment."""

from __future__ import annotations

import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .compare import DEFAULT_MAX_DIFF_CHARS
from .errors import ConfigurationError
from .step_workflows.docker import DEFAULT_TIMEOUT

IMAGE_ENV = "IMAGE"
OUTPUT_DIRNAME = "output"
EXPECTED_DIRNAME = "expected"


@dataclass(frozen=True)
class RunConfig:
    """Fully resolved configuration for one run."""

    image: Optional[str]
    fixtures_dir: Path
    diff_tool: Optional[str] = None
    keep_output: bool = False
    workers: int = 1
    timeout: float = DEFAULT_TIMEOUT
    max_diff_chars: int = DEFAULT_MAX_DIFF_CHARS
    fail_fast: bool = False
    docker: str = "docker"

    @property
    def output_dir(self) -> Path:
        return self.fixtures_dir / OUTPUT_DIRNAME

    @property
    def expected_dir(self) -> Path:
        return self.fixtures_dir / EXPECTED_DIRNAME

    def validate(self) -> "RunConfig":
        if not self.image or not self.image.strip():
            raise ConfigurationError(
                f"--image is required (or set {IMAGE_ENV}) to name the image under test"
            )
        if not self.fixtures_dir.is_dir():
            raise ConfigurationError(f"Fixtures directory not found: {self.fixtures_dir}")
        if self.workers < 1:
            raise ConfigurationError("--workers must be at least 1")
        if self.timeout <= 0:
            raise ConfigurationError("--timeout must be positive")
        if self.diff_tool is not None:
            parts = shlex.split(self.diff_tool)
            if not parts:
                raise ConfigurationError("--diff-tool must not be empty")
            if shutil.which(parts[0]) is None:
                raise ConfigurationError(f"Diff tool not found in PATH: {parts[0]}")
        return self


def resolve_config(
    *,
    image: Optional[str],
    fixtures_dir: Path,
    diff_tool: Optional[str] = None,
    keep_output: bool = False,
    workers: int = 1,
    timeout: float = DEFAULT_TIMEOUT,
    max_diff_chars: int = DEFAULT_MAX_DIFF_CHARS,
    fail_fast: bool = False,
    docker: str = "docker",
) -> RunConfig:
    """Build and validate a RunConfig. Raises ConfigurationError."""
    return RunConfig(
        image=image.strip() if image else None,
        fixtures_dir=Path(fixtures_dir).expanduser().resolve(),
        diff_tool=diff_tool or None,
        keep_output=keep_output,
        workers=workers,
        timeout=timeout,
        max_diff_chars=max_diff_chars,
        fail_fast=fail_fast,
        docker=docker,
    ).validate()
