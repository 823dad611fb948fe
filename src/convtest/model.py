# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Status(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    BLOCKED = "blocked"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def unlocks_dependents(self) -> bool:
        return self in (Status.PASS, Status.SKIP)


@dataclass(frozen=True)
class Probe:
    """
    A lightweight capability check run before a conditional target.

    Two flavours:
      - command probe: `args` run through the image, exit 0 means applicable
      - version probe: `min_version` compared with what `--version` reports
    """
    args: Tuple[str, ...] = ()
    min_version: Optional[str] = None
    entrypoint: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class Target:
    """
    A named unit of test work.

    `args` is the argument template handed to the image; `{output}` and
    `{data}` are substituted at run time. A target with neither `args` nor
    `copy_from` is an aggregate that only fans out to its `needs`.
    """
    name: str
    needs: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()
    entrypoint: Optional[str] = None
    fixtures: Tuple[str, ...] = ()
    output: Optional[str] = None      # relative to the fixtures dir, e.g. "output/french.pdf"
    expected: Optional[str] = None    # golden file name, relative to expected/
    probe: Optional[Probe] = None
    copy_from: Optional[str] = None   # fixture copied to `output` instead of running the image
    description: str = ""

    @property
    def is_aggregate(self) -> bool:
        return not self.args and self.copy_from is None


@dataclass
class ExecutionResult:
    target: str
    status: Status
    exit_code: int | None = None
    stdout: bytes = b""
    stderr: str = ""
    reason: str = ""
    diff: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at
