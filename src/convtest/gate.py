# gate.py
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from .errors import ExecutionFailed
from .model import Probe

logger = logging.getLogger(__name__)

# (args, entrypoint) -> stdout bytes; raises ExecutionFailed on non-zero exit
InvokeFn = Callable[[Sequence[str], Optional[str]], bytes]

_VERSION_RE = re.compile(r"(\d+(?:\.\d+)+)")


class GateState(str, Enum):
    PROBING = "probing"
    APPLICABLE = "applicable"
    SKIPPED = "skipped"


class ConditionalGate:
    """
    Decides whether a target applies to the tool under test.

    Starts in PROBING; the first `resolve()` runs the probe and settles in
    APPLICABLE or SKIPPED. Any probe failure, including the probe command
    failing, means SKIPPED. RuntimeEnvironmentError is not caught: a broken
    runtime is not a skip.
    """

    def __init__(self, target: str, probe: Probe, invoke: InvokeFn):
        self.target = target
        self.probe = probe
        self._invoke = invoke
        self.state = GateState.PROBING
        self.reason = ""

    @property
    def applicable(self) -> bool:
        return self.resolve() is GateState.APPLICABLE

    def resolve(self) -> GateState:
        if self.state is not GateState.PROBING:
            return self.state

        try:
            if self.probe.min_version is not None:
                self._check_version(self.probe.min_version)
            else:
                self._invoke(self.probe.args, self.probe.entrypoint)
        except ExecutionFailed as e:
            self._settle(GateState.SKIPPED, self._skip_reason(e))
        except _VersionTooOld as e:
            self._settle(GateState.SKIPPED, str(e))
        else:
            self._settle(GateState.APPLICABLE, "")
        return self.state

    def _check_version(self, minimum: str) -> None:
        args = self.probe.args or ("--version",)
        out = self._invoke(args, self.probe.entrypoint)
        found = find_version(out.decode("utf-8", errors="replace"))
        if found is None:
            raise _VersionTooOld("could not determine tool version")
        if parse_version(found) < parse_version(minimum):
            raise _VersionTooOld(f"tool version {found} is older than {minimum}")

    def _skip_reason(self, exc: ExecutionFailed) -> str:
        what = self.probe.description or "probe"
        if exc.timed_out:
            return f"{what} timed out"
        return f"{what} failed" + (f" (exit={exc.exit_code})" if exc.exit_code is not None else "")

    def _settle(self, state: GateState, reason: str) -> None:
        self.state = state
        self.reason = reason
        logger.debug("gate for %s resolved: %s %s", self.target, state.value, reason)


class _VersionTooOld(Exception):
    pass


def find_version(text: str) -> Optional[str]:
    """First dotted version number in `text`, e.g. "pandoc 2.10.1" -> "2.10.1"."""
    first_line = text.strip().splitlines()[0] if text.strip() else ""
    m = _VERSION_RE.search(first_line) or _VERSION_RE.search(text)
    return m.group(1) if m else None


def parse_version(value: str) -> Tuple[int, ...]:
    parts = tuple(int(p) for p in value.strip().split("."))
    # 2.16 == 2.16.0
    while len(parts) > 1 and parts[-1] == 0:
        parts = parts[:-1]
    return parts
