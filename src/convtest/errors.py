# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class HarnessError(Exception):
    """Base class for every error raised by convtest."""


class ConfigurationError(HarnessError):
    """Missing or invalid settings. Fatal: nothing runs."""


@dataclass
class RuntimeEnvironmentError(HarnessError):
    """
    The container runtime or the image cannot be used.

    Fatal for the whole run: no target can proceed without it.
    """
    message: str
    hint: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [self.message]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        if self.hint:
            lines.append(f"hint: {self.hint}")
        return "\n".join(lines)


class UnknownTarget(HarnessError):
    def __init__(self, name: str, known: list[str] | None = None, needed_by: str | None = None):
        self.name = name
        self.known = sorted(known or [])
        self.needed_by = needed_by
        if needed_by:
            msg = f"Target '{needed_by}' needs unknown target '{name}'"
        else:
            msg = f"Unknown target '{name}'"
        super().__init__(msg)


class CyclicDependency(HarnessError):
    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__("Cyclic dependency: " + " -> ".join(self.cycle))


@dataclass
class ExecutionFailed(HarnessError):
    """A target's subprocess exited non-zero, timed out, or could not start."""
    target: str
    message: str
    exit_code: int | None = None
    stderr: str = ""
    timed_out: bool = False

    def __str__(self) -> str:
        head = f"[{self.target}] {self.message}"
        if self.exit_code is not None:
            head += f" (exit={self.exit_code})"
        return head
