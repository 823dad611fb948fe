"""Golden-file comparison for target output."""

from __future__ import annotations

import difflib
import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIFF_CHARS = 64 * 1024


@dataclass(frozen=True)
class Match:
    pass


@dataclass(frozen=True)
class Mismatch:
    diff_text: str


CompareResult = Union[Match, Mismatch]


class Comparator:
    """
    Exact comparison of actual output against a golden file.

    With no `diff_tool` equality is byte-for-byte and the diff is rendered
    in-process. With a `diff_tool` (e.g. "diff" or "diff -u") the tool is run
    as `<tool> <expected> -` with the actual output on stdin; exit 0 is a match.
    """

    def __init__(self, diff_tool: Optional[str] = None, max_chars: int = DEFAULT_MAX_DIFF_CHARS):
        self.diff_tool = diff_tool
        self.max_chars = max_chars

    def compare(self, actual: bytes, expected_path: Path) -> CompareResult:
        return compare(actual, expected_path, diff_tool=self.diff_tool, max_chars=self.max_chars)


def compare(
    actual: bytes,
    expected_path: Path,
    *,
    diff_tool: Optional[str] = None,
    max_chars: int = DEFAULT_MAX_DIFF_CHARS,
) -> CompareResult:
    expected_path = Path(expected_path)
    if not expected_path.is_file():
        return Mismatch(f"expected output not found: {expected_path}")

    if diff_tool:
        result = _compare_with_tool(actual, expected_path, diff_tool)
    else:
        result = _compare_bytes(actual, expected_path)

    if isinstance(result, Mismatch):
        return Mismatch(_truncate(result.diff_text, max_chars))
    return result


def _compare_bytes(actual: bytes, expected_path: Path) -> CompareResult:
    expected = expected_path.read_bytes()
    if actual == expected:
        return Match()

    offset = _first_divergence(actual, expected)
    header = f"first difference at byte {offset}"

    diff = "".join(
        _terminate(line)
        for line in difflib.unified_diff(
            expected.decode("utf-8", errors="replace").splitlines(keepends=True),
            actual.decode("utf-8", errors="replace").splitlines(keepends=True),
            fromfile=str(expected_path),
            tofile="(actual)",
        )
    )
    if not diff:
        # Only undecodable bytes differ.
        return Mismatch(f"{header} (binary content differs)")
    return Mismatch(f"{header}\n{diff}")


def _compare_with_tool(actual: bytes, expected_path: Path, diff_tool: str) -> CompareResult:
    cmd = shlex.split(diff_tool) + [str(expected_path), "-"]
    logger.debug("running diff tool: %s", shlex.join(cmd))
    try:
        proc = subprocess.run(cmd, input=actual, capture_output=True)
    except OSError as e:
        raise ConfigurationError(f"Diff tool cannot be run: {cmd[0]} ({e.strerror or e})") from e

    if proc.returncode == 0:
        return Match()

    text = proc.stdout.decode("utf-8", errors="replace")
    err = proc.stderr.decode("utf-8", errors="replace")
    if err.strip():
        text = f"{text}{err}" if text else err
    if not text.strip():
        text = f"{cmd[0]} reported a difference (exit={proc.returncode})"
    return Mismatch(text)


def _terminate(line: str) -> str:
    if line.endswith("\n"):
        return line
    return line + "\n\\ No newline at end of file\n"


def _first_divergence(a: bytes, b: bytes) -> int:
    for i, (x, y) in enumerate(zip(a, b)):
        if x != y:
            return i
    return min(len(a), len(b))


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    dropped = len(text) - max_chars
    return text[:max_chars] + f"\n... diff truncated ({dropped} more characters)\n"
