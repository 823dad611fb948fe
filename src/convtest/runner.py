# runner.py
from __future__ import annotations

import contextlib
import logging
import runpy
import shutil
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Callable, Deque, Dict, Iterator, List, Optional

from .compare import Comparator, Mismatch
from .dag import TargetGraph
from .errors import ExecutionFailed, HarnessError, RuntimeEnvironmentError
from .gate import ConditionalGate
from .model import ExecutionResult, Status, Target
from .step_workflows.docker import DockerExecutor

logger = logging.getLogger(__name__)

RunFn = Callable[[Target], ExecutionResult]


class ExitCode(IntEnum):
    OK = 0
    FAILURE = 1
    ERROR = 2


@dataclass
class RunReport:
    """Per-target results in resolution order, plus any fatal error."""
    results: Dict[str, ExecutionResult] = field(default_factory=dict)
    fatal: Optional[HarnessError] = None

    def count(self, status: Status) -> int:
        return sum(1 for r in self.results.values() if r.status is status)

    @property
    def exit_code(self) -> ExitCode:
        if self.fatal is not None:
            return ExitCode.ERROR
        if self.count(Status.FAIL) or self.count(Status.BLOCKED):
            return ExitCode.FAILURE
        return ExitCode.OK


# ----------------------------------------------------------------------
# Suite loading (local file)
# ----------------------------------------------------------------------

def load_suite(path: str | Path) -> List[Target]:
    """
    Load targets from a python file.

    The file must define either:
      - targets() -> List[Target]
      - TARGETS = [Target, ...]
    """
    suite_path = Path(path).expanduser().resolve()
    if not suite_path.exists():
        raise FileNotFoundError(f"Suite file not found: {suite_path}")
    if suite_path.suffix != ".py":
        raise ValueError(f"Suite must be a .py file, got: {suite_path.name}")

    globals_dict = runpy.run_path(str(suite_path), run_name=f"convtest_suite_{suite_path.stem}")

    targets = None
    if callable(globals_dict.get("targets")):
        targets = globals_dict["targets"]()
    elif "TARGETS" in globals_dict:
        targets = globals_dict["TARGETS"]

    if not isinstance(targets, list) or not all(isinstance(t, Target) for t in targets):
        raise TypeError(
            "Suite must return/define a List[Target]. "
            "Define targets() -> List[Target] or TARGETS = [Target, ...]."
        )
    return targets


# ----------------------------------------------------------------------
# Output directory lifecycle
# ----------------------------------------------------------------------

def clean_output(output_dir: Path) -> None:
    """Remove everything inside `output_dir`, keeping the directory."""
    if not output_dir.is_dir():
        return
    for child in output_dir.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


@contextlib.contextmanager
def output_workspace(output_dir: Path, *, keep: bool = False) -> Iterator[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        yield output_dir
    finally:
        if not keep:
            clean_output(output_dir)


# ----------------------------------------------------------------------
# One target
# ----------------------------------------------------------------------

def run_target(
    target: Target,
    executor: DockerExecutor,
    comparator: Comparator,
    expected_dir: Path,
) -> ExecutionResult:
    """
    Gate, execute and compare one target.

    ExecutionFailed and mismatches become a FAIL result; RuntimeEnvironmentError
    propagates to the scheduler.
    """
    started = time.monotonic()

    try:
        # A missing fixture is a failure even when the gate would skip.
        executor.check_fixtures(target)
        if target.probe is not None:
            gate = ConditionalGate(target.name, target.probe, executor.probe_invoke)
            if not gate.applicable:
                return ExecutionResult(
                    target=target.name,
                    status=Status.SKIP,
                    reason=gate.reason,
                    started_at=started,
                    finished_at=time.monotonic(),
                )
        result = executor.run(target)
    except ExecutionFailed as e:
        return ExecutionResult(
            target=target.name,
            status=Status.FAIL,
            exit_code=e.exit_code,
            stderr=e.stderr,
            reason=e.message,
            started_at=started,
            finished_at=time.monotonic(),
        )

    if target.expected is not None:
        outcome = comparator.compare(result.stdout, expected_dir / target.expected)
        if isinstance(outcome, Mismatch):
            result.status = Status.FAIL
            result.reason = f"output differs from expected/{target.expected}"
            result.diff = outcome.diff_text

    result.started_at = started
    result.finished_at = time.monotonic()
    return result


# ----------------------------------------------------------------------
# Scheduler
# ----------------------------------------------------------------------

def run_targets(
    targets: List[Target],
    graph: TargetGraph,
    run_fn: RunFn,
    *,
    max_workers: int = 1,
    fail_fast: bool = False,
    on_start: Callable[[Target], None] | None = None,
    on_finish: Callable[[ExecutionResult], None] | None = None,
) -> RunReport:
    """
    Run resolved `targets` in dependency order.

    - A target is submitted only once every prerequisite is PASS or SKIP.
    - A FAIL or BLOCKED prerequisite blocks all dependents transitively;
      independent targets keep running unless `fail_fast` is set.
    - RuntimeEnvironmentError stops scheduling; everything not yet started is
      reported BLOCKED and the error is kept on the report.
    - Any other exception from `run_fn` is that target's FAIL; the run goes on.
    """
    by_name: Dict[str, Target] = {t.name: t for t in targets}
    adj: Dict[str, List[str]] = {name: [] for name in by_name}   # dep -> dependents
    indeg: Dict[str, int] = {name: 0 for name in by_name}

    for t in targets:
        for dep in graph.prerequisites(t):
            if dep in by_name:
                adj[dep].append(t.name)
                indeg[t.name] += 1

    results: Dict[str, ExecutionResult] = {}
    report = RunReport()
    ready: Deque[str] = deque(t.name for t in targets if indeg[t.name] == 0)
    in_flight: Dict[Future, str] = {}
    stop_reason: Optional[str] = None

    def block_dependents(name: str, reason: str) -> None:
        pending = deque(adj[name])
        while pending:
            nxt = pending.popleft()
            if nxt in results:
                continue
            results[nxt] = ExecutionResult(target=nxt, status=Status.BLOCKED, reason=reason)
            if on_finish:
                on_finish(results[nxt])
            pending.extend(adj[nxt])

    max_workers = max(1, max_workers)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            # schedule ready targets up to the worker limit; anything still in
            # `ready` has not started and can be blocked on abort
            while ready and stop_reason is None and len(in_flight) < max_workers:
                name = ready.popleft()
                if on_start:
                    on_start(by_name[name])
                fut = pool.submit(run_fn, by_name[name])
                in_flight[fut] = name

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready targets
            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                name = in_flight.pop(fut)
                try:
                    result = fut.result()
                except ExecutionFailed as e:
                    result = ExecutionResult(
                        target=name,
                        status=Status.FAIL,
                        exit_code=e.exit_code,
                        stderr=e.stderr,
                        reason=e.message,
                    )
                except HarnessError as e:
                    # RuntimeEnvironmentError, or a ConfigurationError surfacing mid-run
                    report.fatal = e
                    if isinstance(e, RuntimeEnvironmentError):
                        stop_reason = "run aborted: container runtime unavailable"
                    else:
                        stop_reason = "run aborted: configuration error"
                    result = ExecutionResult(
                        target=name, status=Status.BLOCKED, reason=str(e).splitlines()[0]
                    )
                except Exception as e:
                    logger.debug("target %s raised", name, exc_info=True)
                    result = ExecutionResult(
                        target=name,
                        status=Status.FAIL,
                        reason=f"{type(e).__name__}: {e}",
                    )

                results[name] = result
                if on_finish:
                    on_finish(result)

                # unlock dependents only on PASS or SKIP
                if result.status.unlocks_dependents:
                    for nxt in adj[name]:
                        indeg[nxt] -= 1
                        if indeg[nxt] == 0:
                            ready.append(nxt)
                else:
                    block_dependents(name, f"prerequisite '{name}' did not pass")
                    if fail_fast and stop_reason is None:
                        stop_reason = f"stopped after failure of '{name}' (fail-fast)"

    for t in targets:
        if t.name not in results:
            results[t.name] = ExecutionResult(
                target=t.name, status=Status.BLOCKED, reason=stop_reason or "not started"
            )
            if on_finish:
                on_finish(results[t.name])

    report.results = {t.name: results[t.name] for t in targets}
    return report
