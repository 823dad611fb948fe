"""Console output formatting utilities for convtest."""

from __future__ import annotations

import sys
import threading
from typing import List, Optional

from ..model import ExecutionResult, Status, Target


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(self, image: str, fixtures_dir: str, target_count: int) -> None:
        """Print run start information."""
        self._emit(
            "",
            "RUN STARTED",
            f"Image: {image}",
            f"Fixtures: {fixtures_dir}",
            f"Targets: {target_count}",
            "",
        )

    def print_target_start(self, target: Target) -> None:
        self._emit(f"▶ {target.name}")

    def print_target_result(self, result: ExecutionResult) -> None:
        mark = {
            Status.PASS: "✓",
            Status.SKIP: "⏭",
            Status.FAIL: "✗",
            Status.BLOCKED: "⊘",
        }[result.status]
        line = f"{mark} {result.target}"
        if result.reason:
            line += f" ({result.reason})"
        self._emit(line)

    def print_plan(self, levels: List[List[str]], descriptions: dict[str, str]) -> None:
        """Print the stages a run would execute."""
        for idx, level in enumerate(levels):
            self._emit(f"=== Stage {idx + 1} ===")
            for name in level:
                desc = descriptions.get(name)
                self._emit(f"  {name}" + (f"  # {desc}" if desc else ""))

    def print_results(self, results: List[ExecutionResult], fatal: Optional[Exception] = None) -> None:
        """Print final summary table; diff text and stderr inline."""
        self._emit("", "=" * 60, "RESULTS", "=" * 60)
        if not results:
            self._emit("  (no targets run)")
        width = max([len(r.target) for r in results] + [6])
        for r in results:
            row = f"  {r.target.ljust(width)}  {r.status.label.ljust(7)}"
            if r.reason:
                row += f"  {r.reason}"
            self._emit(row)
            if r.status is Status.FAIL:
                if r.diff:
                    self._emit(*_indent(r.diff))
                elif r.stderr.strip():
                    self._emit(*_indent(r.stderr if self.debug else _tail(r.stderr, 20)))

        counts = {s: sum(1 for r in results if r.status is s) for s in Status}
        self._emit(
            "-" * 60,
            "  ".join(f"{s.label}: {counts[s]}" for s in Status),
        )
        if fatal is not None:
            self._emit(f"Run aborted: {str(fatal).splitlines()[0]}", err=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)


def _indent(text: str, prefix: str = "    ") -> List[str]:
    return [prefix + line for line in text.rstrip("\n").splitlines()]


def _tail(text: str, n: int) -> str:
    return "\n".join(text.rstrip("\n").splitlines()[-n:])


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
